#!/usr/bin/env python3
"""
Publish a sample appointment result to the PDF upload stream and fetch the report.

Usage:
    # Publish the sample result and download the rendered PDF
    python scripts/send_test_result.py

    # Publish with a fresh result id, without waiting for the report
    python scripts/send_test_result.py --random-id --no-fetch
"""

import argparse
import uuid
from datetime import date, datetime
from pathlib import Path

import redis
import requests
from tenacity import retry, retry_if_result, stop_after_delay, wait_fixed

from clinic_documents import config
from clinic_documents.adapters.redis_adapter import publish_result_created
from clinic_documents.domain.events import AppointmentResultCreated

SAMPLE_RESULT_ID = uuid.UUID("11111111-1111-1111-1111-111111111111")


def sample_result(result_id: uuid.UUID = SAMPLE_RESULT_ID) -> AppointmentResultCreated:
    return AppointmentResultCreated(
        result_id=result_id,
        date=datetime(2024, 3, 1, 10, 30),
        service_name="Consultation",
        specialization_name="Cardiology",
        patient_full_name="Jane Doe",
        patient_birth_date=date(1990, 5, 2),
        doctor_full_name="Dr. Smith",
        complaints="Chest pain",
        conclusion="Stable",
        recommendations="Follow-up in 2 weeks",
    )


@retry(
    stop=stop_after_delay(30),
    wait=wait_fixed(1),
    retry=retry_if_result(lambda r: r.status_code == 404),
    retry_error_callback=lambda state: state.outcome.result(),
)
def fetch_report(api_url: str, key: str) -> requests.Response:
    """Poll the documents API until the report has been stored."""
    return requests.get(f"{api_url}/document/{key}", timeout=5)


def main():
    parser = argparse.ArgumentParser(
        description="Publish a sample appointment result and fetch the rendered PDF"
    )
    parser.add_argument(
        "--random-id",
        action="store_true",
        help="Use a random result id instead of 11111111-1111-1111-1111-111111111111"
    )
    parser.add_argument(
        "--no-fetch",
        action="store_true",
        help="Only publish the event"
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("."),
        help="Directory the downloaded report is written to (default: current directory)"
    )
    args = parser.parse_args()

    event = sample_result(uuid.uuid4() if args.random_id else SAMPLE_RESULT_ID)
    queue_config = config.get_pdf_queue_config()
    client = redis.Redis(**config.get_redis_config(), decode_responses=True)

    message_id = publish_result_created(client, event, stream=queue_config["stream"])
    print(f"Published result {event.result_id} to {queue_config['stream']} as {message_id}")

    if args.no_fetch:
        return

    key = f"{event.result_id}.pdf"
    api_url = config.get_api_url()
    response = fetch_report(api_url, key)
    if response.status_code != 200:
        print(f"Failed: {response.status_code} - {response.text[:200]}")
        return

    output = args.output_dir / key
    output.write_bytes(response.content)
    print(f"Saved {response.headers.get('content-type')} report to {output} ({len(response.content)} bytes)")


if __name__ == "__main__":
    main()
