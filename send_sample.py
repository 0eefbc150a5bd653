"""
Pretend to be the ESP32: post one sample battery payload to the logger.

Usage:
  python send_sample.py --schema nfc --key "Battery 3" --count 4
  python send_sample.py --status
  python send_sample.py --clear
"""
import argparse
import json
import sys

import requests

DEFAULT_URL = "http://127.0.0.1:5000/"


def sample_payload(schema, key, count):
    if schema == "nfc":
        seconds = count * 150
        return {
            "name": key,
            "uid": "04:A2:3B:1C:5D:80",
            "usageCount": count,
            "totalTime": seconds,
            "totalTimeFormatted": f"{seconds // 60}m {seconds % 60}s",
        }
    return {
        "battery_uuid": key,
        "battery_usage": "match",
        "battery_usage_count": count,
        "total_time_used": count * 150,
        "total_percentage_used": min(100, count * 12),
    }


def post_sample(url, payload, timeout=10):
    resp = requests.post(url, json=payload, timeout=timeout)
    print("POST", resp.status_code, json.dumps(payload))
    envelope = resp.json()
    print(json.dumps(envelope, indent=2))
    return envelope


def get_status(url, clear=False, timeout=10):
    params = {"action": "clear"} if clear else None
    resp = requests.get(url, params=params, timeout=timeout)
    print("GET", resp.status_code, resp.text)
    return resp.ok


def main(argv=None):
    parser = argparse.ArgumentParser(description="Send a sample battery payload to the logger")
    parser.add_argument("--url", default=DEFAULT_URL)
    parser.add_argument("--schema", choices=("uuid", "nfc"), default="uuid")
    parser.add_argument("--key", default="BAT-0001", help="battery UUID or name")
    parser.add_argument("--count", type=int, default=1, help="usage count to report")
    parser.add_argument("--status", action="store_true", help="only check the logger is up")
    parser.add_argument("--clear", action="store_true", help="wipe all data rows")
    args = parser.parse_args(argv)

    try:
        if args.status or args.clear:
            return 0 if get_status(args.url, clear=args.clear) else 1
        envelope = post_sample(args.url, sample_payload(args.schema, args.key, args.count))
    except (requests.RequestException, ValueError) as e:
        print(f"❌ Request to {args.url} failed: {e}")
        return 1
    return 1 if envelope.get("status") == "error" else 0


if __name__ == "__main__":
    sys.exit(main())
