"""
Cloudflare DDNS - keeps Cloudflare DNS records in sync with the host's public IP.

This package provides a one-shot (or watch-mode) reconciler that looks up the
machine's public IPv4/IPv6 addresses and creates or updates A/AAAA records
through the Cloudflare API only when they are stale.
"""

__version__ = "0.1.0"
__author__ = "Cloudflare DDNS Contributors"
