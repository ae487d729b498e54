"""
Penny Channel core: configuration, errors, money and the auction session.
"""
