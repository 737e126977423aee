"""Edgeship - deployment pipeline for Cloudflare Workers and Pages."""

__version__ = "0.4.0"
