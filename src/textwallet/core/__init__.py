"""Bot runtime: reply texts, dispatcher, poller and the WalletBot orchestrator."""
