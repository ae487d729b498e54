"""
Penny Channel

Off-chain penny auction coordination over a multi-party state channel:
- Versioned session ledger shared by bidder, seller and operator
- Commit-after-acknowledgment bidding with fund conservation
- Version-ordered reconciliation of pushed remote updates
- Countdown-driven expiry and settlement
"""

__version__ = "0.1.0"
