"""
stakepool - Liquid staking pool accounting core

Components:
- Ratio math between the staked asset and the share token
- Validator ledger with per-validator FIFO vaults of stake records
- Epoch-lagged pool accounting with fee-adjusted delayed redemption
"""
