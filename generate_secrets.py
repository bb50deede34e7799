#!/usr/bin/env python3
"""
Generate secure secrets for Liga Typerow
Run this script to generate the required SECRET_KEY and ADMIN_API_TOKEN
"""

import secrets


def generate_secrets():
    """Generate secure random keys for the application"""
    print("🔐 Generating secure secrets for Liga Typerow...")
    print("=" * 50)

    print(f"SECRET_KEY={secrets.token_urlsafe(32)}")
    print(f"ADMIN_API_TOKEN={secrets.token_urlsafe(24)}")

    print("=" * 50)
    print("📝 Copy these values to your .env file")
    print("⚠️  Send ADMIN_API_TOKEN in the X-Admin-Token header of admin API calls")


if __name__ == "__main__":
    generate_secrets()
