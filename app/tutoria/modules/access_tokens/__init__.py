"""
Capability tokens.

Bearer strings granting anonymous widget sessions a fixed set of capabilities
(chat, file access) on one module or professor agent.

Lifecycle: Active -> (expired by time | revoked) -> Inactive. Expiry is
computed on every validation; nothing sweeps expired rows. Revocation is
terminal.
"""
