import base64
import os
import sys
from pathlib import Path

import pandas as pd
import requests
from tabulate import tabulate

from list_ocr.progress import iter_messages
from list_ocr.types import ROW_FIELDS

OCR_URL = os.getenv("LIST_OCR_URL", "http://127.0.0.1:5000/api/ocr")

_MIME_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
    ".gif": "image/gif",
}


def image_data_url(image_path):
    """Data URL for known suffixes, bare base64 otherwise (the service sniffs the type)."""
    p = Path(image_path)
    data = base64.b64encode(p.read_bytes()).decode("ascii")
    mime = _MIME_TYPES.get(p.suffix.lower())
    if mime is None:
        return data
    return f"data:{mime};base64,{data}"


def get_list_dataframe(image_path, url=OCR_URL, concurrency=None, enable_thinking=None, access_token=None):
    payload = {"image": image_data_url(image_path)}
    if concurrency is not None:
        payload["concurrency"] = concurrency
    if enable_thinking is not None:
        payload["enableThinking"] = enable_thinking

    headers = {"X-Access-Token": access_token} if access_token else {}

    print(f"Sending {image_path} for recognition...")
    response = requests.post(url, json=payload, headers=headers, stream=True, timeout=300)

    if response.status_code != 200:
        print(f"Error from OCR service: {response.text}")
        return None

    for message in iter_messages(response.iter_lines()):
        kind = message.get("type")
        if kind == "progress":
            print(f"[{message['progress']:3d}%] {message['message']}")
        elif kind == "error":
            err = message.get("error") or {}
            print(f"Error {err.get('code')}: {err.get('message')}")
            return None
        elif kind == "result":
            data = message["data"]
            df = pd.DataFrame(data["items"], columns=list(ROW_FIELDS))
            meta = data.get("metadata") or {}
            print(
                f"Successfully created DataFrame with {len(df)} rows "
                f"({meta.get('validAttempts')}/{meta.get('concurrencyUsed')} valid, "
                f"{meta.get('processingTimeSeconds')}s)."
            )
            return df

    print("Error: stream ended without a result.")
    return None


# Usage Example:
if __name__ == "__main__":
    if len(sys.argv) < 2:
        sys.exit("usage: get_list_dataframe.py IMAGE [CONCURRENCY]")
    conc = int(sys.argv[2]) if len(sys.argv) > 2 else None
    my_df = get_list_dataframe(sys.argv[1], concurrency=conc, access_token=os.getenv("ACCESS_TOKEN"))
    if my_df is not None:
        print(tabulate(my_df, headers="keys", tablefmt="psql"))
