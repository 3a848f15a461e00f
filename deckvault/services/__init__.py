"""
DeckVault services.

Allocation bookkeeping, the card catalog client, checkpoint storage and the
resumable bulk operation controller.
"""
