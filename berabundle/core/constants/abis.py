from __future__ import annotations

# Minimal ABIs for reward discovery, scanning and claiming on Berachain.

ERC20_ABI = [
    {
        "type": "function",
        "stateMutability": "view",
        "name": "symbol",
        "inputs": [],
        "outputs": [{"name": "", "type": "string"}],
    },
    {
        "type": "function",
        "stateMutability": "view",
        "name": "name",
        "inputs": [],
        "outputs": [{"name": "", "type": "string"}],
    },
    {
        "type": "function",
        "stateMutability": "view",
        "name": "decimals",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint8"}],
    },
    {
        "type": "function",
        "stateMutability": "view",
        "name": "balanceOf",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
]

REWARD_VAULT_FACTORY_ABI = [
    {
        "type": "function",
        "stateMutability": "view",
        "name": "allVaultsLength",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function",
        "stateMutability": "view",
        "name": "allVaults",
        "inputs": [{"name": "index", "type": "uint256"}],
        "outputs": [{"name": "", "type": "address"}],
    },
]

REWARD_VAULT_ABI = [
    {
        "type": "function",
        "stateMutability": "view",
        "name": "balanceOf",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function",
        "stateMutability": "view",
        "name": "earned",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function",
        "stateMutability": "view",
        "name": "totalSupply",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function",
        "stateMutability": "view",
        "name": "rewardRate",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function",
        "stateMutability": "view",
        "name": "getRewardForDuration",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function",
        "stateMutability": "view",
        "name": "stakeToken",
        "inputs": [],
        "outputs": [{"name": "", "type": "address"}],
    },
    {
        "type": "function",
        "stateMutability": "view",
        "name": "rewardToken",
        "inputs": [],
        "outputs": [{"name": "", "type": "address"}],
    },
    {
        "type": "function",
        "stateMutability": "nonpayable",
        "name": "getReward",
        "inputs": [
            {"name": "account", "type": "address"},
            {"name": "recipient", "type": "address"},
        ],
        "outputs": [{"name": "", "type": "uint256"}],
    },
]

BGT_STAKER_ABI = [
    {
        "type": "function",
        "stateMutability": "view",
        "name": "balanceOf",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function",
        "stateMutability": "view",
        "name": "earned",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function",
        "stateMutability": "nonpayable",
        "name": "getReward",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
    },
]

# Validator boosts live on the BGT token contract.
BGT_BOOST_ABI = [
    {
        "type": "function",
        "stateMutability": "view",
        "name": "boosts",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [{"name": "", "type": "uint128"}],
    },
    {
        "type": "function",
        "stateMutability": "view",
        "name": "queuedBoost",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [{"name": "", "type": "uint128"}],
    },
    {
        "type": "function",
        "stateMutability": "view",
        "name": "boosted",
        "inputs": [
            {"name": "account", "type": "address"},
            {"name": "pubkey", "type": "bytes"},
        ],
        "outputs": [{"name": "", "type": "uint128"}],
    },
    {
        "type": "function",
        "stateMutability": "view",
        "name": "boostedQueue",
        "inputs": [
            {"name": "account", "type": "address"},
            {"name": "pubkey", "type": "bytes"},
        ],
        "outputs": [
            {"name": "blockNumberLast", "type": "uint32"},
            {"name": "balance", "type": "uint128"},
        ],
    },
    {
        "type": "function",
        "stateMutability": "view",
        "name": "boostees",
        "inputs": [{"name": "pubkey", "type": "bytes"}],
        "outputs": [{"name": "", "type": "uint128"}],
    },
    {
        "type": "function",
        "stateMutability": "nonpayable",
        "name": "activateBoost",
        "inputs": [
            {"name": "user", "type": "address"},
            {"name": "pubkey", "type": "bytes"},
        ],
        "outputs": [{"name": "", "type": "bool"}],
    },
]
