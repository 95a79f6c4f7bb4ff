"""Client package for timesync-testkit.

Contains the measuring side of the exchange:
- runner: run_client, run_loopback and ExitCode

Import directly from client.runner; it depends on session/ and server/.
"""
