"""
Core package.

Holds the pieces shared by the protocol, device and web layers. Consumers
should import from the specific module they need (e.g.
`bravia_remote.core.events`).
"""
