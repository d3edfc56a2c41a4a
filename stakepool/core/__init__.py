"""Pool accounting, validator ledger and their collaborators"""
