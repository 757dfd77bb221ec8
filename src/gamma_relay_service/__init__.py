"""Gamma/tvcode snapshot relay: convert, notify, record, analyze."""
