"""Playback: backend selection, queue policy, transport engine and player session."""
