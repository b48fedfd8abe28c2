"""
Actor management: users, their classification and derived role links.
"""
