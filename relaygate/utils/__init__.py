"""
Utilities - logging and transaction records
"""
