"""Inventory allocation service: stock ledger, order log and FIFO allocation engine."""

__version__ = "0.1.0"
