"""Print invoices and per-status counts for a client and period."""

import argparse
import json

import httpx


def main() -> None:
    parser = argparse.ArgumentParser(description="List invoices and their lifecycle summary.")
    parser.add_argument("--invoicing-url", default="http://localhost:8002")
    parser.add_argument("--client", default=None, help="client id or part of the client name")
    parser.add_argument("--start-date", default=None, help="YYYY-MM-DD")
    parser.add_argument("--end-date", default=None, help="YYYY-MM-DD")
    args = parser.parse_args()

    params = {
        key: value
        for key, value in {"clientId": args.client, "startDate": args.start_date, "endDate": args.end_date}.items()
        if value
    }
    with httpx.Client(base_url=args.invoicing_url, timeout=10.0) as client:
        invoices = client.get("/invoices", params=params)
        invoices.raise_for_status()
        summary = client.get("/invoices/summary", params=params)
        summary.raise_for_status()

    for invoice in invoices.json():
        print(
            f"{invoice['invoiceNumber']:<10} {invoice['clientName']:<24} "
            f"{invoice['periodStart']}..{invoice['periodEnd']} "
            f"{invoice['status']:<9} {invoice['totalAmount']:>12.2f}"
        )
    print(json.dumps(summary.json(), indent=2))


if __name__ == "__main__":
    main()
