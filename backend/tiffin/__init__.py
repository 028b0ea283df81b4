"""Tiffin subscription and ordering backend."""
