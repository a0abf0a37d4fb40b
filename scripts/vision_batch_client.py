#!/usr/bin/env python3
"""
Send a scanned PDF through the vision batch endpoint.

Each page is rendered to PNG with pdfplumber, base64-encoded and posted to
/api/pipeline/vision/batch in chunks that respect the server's page limit.
Lab records from every chunk are merged in page order.

Usage:
------
python3 scripts/vision_batch_client.py \
    --pdf ~/Downloads/lab_report.pdf \
    --base-url http://127.0.0.1:5080 \
    --token "<JWT>" \
    --output records.json

Environment:
------------
MEDQ_API_TOKEN can be used instead of --token.
"""

from __future__ import annotations

import argparse
import base64
import io
import json
import os
from pathlib import Path
from typing import Any, Dict, List

import pdfplumber
import requests
from dotenv import load_dotenv

REPO_ROOT = Path(__file__).resolve().parents[1]
ENV_FILE = REPO_ROOT / "medq_platform" / ".env"
if ENV_FILE.exists():
    load_dotenv(dotenv_path=ENV_FILE)

MAX_PAGES_PER_REQUEST = 25


def render_pdf_pages(pdf_path: Path, resolution: int) -> List[str]:
    images: List[str] = []
    with pdfplumber.open(pdf_path) as pdf:
        for page in pdf.pages:
            pil_image = page.to_image(resolution=resolution).original.convert("RGB")
            buffer = io.BytesIO()
            pil_image.save(buffer, format="PNG")
            encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
            images.append(f"data:image/png;base64,{encoded}")
    return images


def post_batch(base_url: str, token: str, images: List[str], concurrency: int | None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"images": images}
    if concurrency:
        body["concurrency"] = concurrency
    resp = requests.post(
        f"{base_url.rstrip('/')}/api/pipeline/vision/batch",
        json=body,
        headers={"Authorization": f"Bearer {token}"},
        timeout=600,
    )
    resp.raise_for_status()
    return resp.json()["data"]


def main() -> None:
    parser = argparse.ArgumentParser(description="Extract lab records from a scanned PDF via the vision batch API.")
    parser.add_argument("--pdf", required=True, help="Path to PDF file.")
    parser.add_argument("--base-url", default=os.getenv("MEDQ_API_URL", "http://127.0.0.1:5080"))
    parser.add_argument("--token", default=os.getenv("MEDQ_API_TOKEN"), help="JWT sent as a bearer token.")
    parser.add_argument("--concurrency", type=int, help="Requested per-batch concurrency.")
    parser.add_argument("--resolution", type=int, default=150, help="Render resolution in DPI.")
    parser.add_argument("--output", help="Write merged records to this JSON file.")
    args = parser.parse_args()

    if not args.token:
        raise SystemExit("--token (or MEDQ_API_TOKEN) is required")

    pdf_path = Path(args.pdf).expanduser().resolve()
    images = render_pdf_pages(pdf_path, args.resolution)
    print(f"Rendered {len(images)} page(s) from {pdf_path.name}", flush=True)

    records: List[dict] = []
    failures: List[dict] = []
    for offset in range(0, len(images), MAX_PAGES_PER_REQUEST):
        chunk = images[offset:offset + MAX_PAGES_PER_REQUEST]
        print(f"[pages {offset + 1}-{offset + len(chunk)}] posting batch...", flush=True)
        data = post_batch(args.base_url, args.token, chunk, args.concurrency)
        # Page numbers restart at 1 in every request.
        for failure in data.get("failures", []):
            failures.append({**failure, "page": failure["page"] + offset})
        records.extend(data.get("results", []))
        meta = data.get("meta", {})
        print(
            f"  -> {meta.get('pagesSucceeded', 0)} ok, {meta.get('pagesFailed', 0)} failed "
            f"in {meta.get('totalMs', 0)} ms",
            flush=True,
        )

    for failure in failures:
        print(f"  !! page {failure['page']}: {failure.get('error')}", flush=True)

    payload = json.dumps({"records": records, "failures": failures}, ensure_ascii=False, indent=2)
    if args.output:
        Path(args.output).write_text(payload, encoding="utf-8")
        print(f"Wrote {len(records)} record(s) to {args.output}")
    else:
        print(payload)


if __name__ == "__main__":
    main()
