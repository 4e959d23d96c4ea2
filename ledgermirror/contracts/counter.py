from __future__ import annotations

# v1 counter contract (frozen semantics for v1).
#
# getSwordCount(category) -> uint256   view, one call per category
# incrementSword(category)             mutating, return value discarded
#
# `category` is a uint256 on the wire. The deployed contract only tracks
# 0/1/2 and silently ignores anything else.

GET_COUNT_FN = "getSwordCount"
INCREMENT_FN = "incrementSword"

COUNTER_ABI = [
    {
        "type": "function",
        "name": GET_COUNT_FN,
        "stateMutability": "view",
        "inputs": [{"name": "color", "type": "uint256"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function",
        "name": INCREMENT_FN,
        "stateMutability": "nonpayable",
        "inputs": [{"name": "color", "type": "uint256"}],
        "outputs": [],
    },
]
