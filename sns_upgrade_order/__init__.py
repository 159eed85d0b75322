"""
SNS canister upgrade-order validator.

Upgrades a fresh SNS deployment to a target version in every possible
canister ordering and checks that the compressed and decompressed WASM
delivery paths converge on the same installed module.
"""

__version__ = "0.1.0"
