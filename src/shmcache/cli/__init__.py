"""Command-line interface for shmcache."""
