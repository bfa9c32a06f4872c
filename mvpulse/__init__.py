"""
MVPulse ledger mirror: client-side state for the MVPulse polling platform.

Layers:
  core/     Pure math on snapshots (amounts, AMM, staking, rewards)
  ledger/   Ledger REST + stats API clients, contract readers, models
  mirror/   Snapshot cache, state reconciler, configuration
  mcp/      Read-only MCP tool server (display boundary)
"""
