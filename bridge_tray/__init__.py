"""
Bridge Tray: supervises the bundled bridge-server sidecar on behalf of a
desktop host and reports its health as a tray state.
"""
