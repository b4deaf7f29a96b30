"""FBAR intake backend: client form drafts, submissions and the admin review console."""
