"""Server package for timesync-testkit.

Contains the responding side of the exchange:
- runner: run_server, answering PINGs on a serial device
- loopback: LoopbackPeer, a simulated peer on a pty pair

Import directly from the submodules; they depend on session/.
"""
