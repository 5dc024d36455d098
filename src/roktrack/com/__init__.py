"""Peer coordination - message codes, broadcast payload, BLE transport."""
