"""
Teams module: team CRUD and membership. The team manager is always a LEADER member.
"""
