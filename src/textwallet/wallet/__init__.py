"""Smart-contract wallet system for textwallet.

Provides signer custody, the ERC-4337 sponsored-operation protocol, a web3
chain gateway, and the registration / transaction managers that the message
dispatcher drives. Every on-chain write is a paymaster-sponsored
UserOperation, so users never hold gas.
"""
