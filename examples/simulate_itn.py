#!/usr/bin/env python3
"""
Example: Simulate a PayFast ITN for testing.

Creates an unpaid application in the configured database (unless it
already exists), then posts a correctly signed ITN for it to a running
service.

Usage:
    python simulate_itn.py app-123 150.00
    python simulate_itn.py app-123 150.00 --status PENDING --api-url http://localhost:8000

Note: the service still validates the ITN with PayFast, so point
PAYFAST_VALIDATE_HOST at a stub that answers VALID when testing locally.
"""

import argparse
import asyncio
import os
import secrets
import sys
from decimal import Decimal
from urllib.parse import urlencode

import aiohttp

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import config
from database.db import Database
from services.signature import generate_signature


def build_itn(application_id: str, amount: str, status: str) -> dict:
    """Build ITN fields the way PayFast posts them, signature last."""
    gross = Decimal(amount)
    fee = (gross * Decimal('0.035')).quantize(Decimal('0.01'))

    fields = {
        'm_payment_id': application_id,
        'pf_payment_id': str(secrets.randbelow(10 ** 7)),
        'payment_status': status,
        'item_name': 'Mentorship Application',
        'amount_gross': f"{gross:.2f}",
        'amount_fee': f"{-fee:.2f}",
        'amount_net': f"{gross - fee:.2f}",
        'custom_str1': application_id,
        'merchant_id': config.itn.merchant_id or '10000100',
        'payment_method': 'cc',
        'token': secrets.token_hex(16),
    }
    fields['signature'] = generate_signature(fields, config.itn.passphrase)
    return fields


async def ensure_application(application_id: str) -> None:
    """Create the application row if the registration flow has not."""
    db = Database()
    await db.connect()
    await db.init_schema()

    if not await db.get_application(application_id):
        await db.create_application(application_id, full_name='Simulated Applicant')
        print(f"Created application {application_id}")

    await db.disconnect()


async def simulate_itn(api_url: str, application_id: str, amount: str, status: str) -> None:
    await ensure_application(application_id)

    fields = build_itn(application_id, amount, status)
    print(f"Posting ITN for {application_id}: status={status} gross={fields['amount_gross']}")

    async with aiohttp.ClientSession() as session:
        async with session.post(
            f"{api_url}/api/payfast-itn",
            data=urlencode(fields),
            headers={'Content-Type': 'application/x-www-form-urlencoded'}
        ) as response:
            body = await response.text()
            print(f"Response: {response.status} {body}")


async def main():
    parser = argparse.ArgumentParser(
        description='Simulate a PayFast ITN for testing'
    )
    parser.add_argument('application_id', help='Application id (m_payment_id)')
    parser.add_argument('amount', help='Gross amount (e.g., 150.00)')
    parser.add_argument(
        '--status',
        default='COMPLETE',
        help='payment_status to send (default: COMPLETE)'
    )
    parser.add_argument(
        '--api-url',
        default=f"http://localhost:{config.api.port}",
        help='Service base URL'
    )

    args = parser.parse_args()

    await simulate_itn(
        api_url=args.api_url,
        application_id=args.application_id,
        amount=args.amount,
        status=args.status.upper()
    )


if __name__ == '__main__':
    asyncio.run(main())
