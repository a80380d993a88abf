# codguard/integrations/call_center.py
import json
from typing import Any, Dict, List, Optional

import gspread

from ..config import settings
from ..errors import IntegrationError
from ..utils.logging import logger

COLUMNS = [
    "order_id", "order_number", "customer_name", "phone", "address",
    "item_count", "amount", "reason", "priority", "created_at",
]

def record_to_row(record: Dict[str, Any]) -> List[str]:
    return ["" if record.get(c) is None else str(record.get(c)) for c in COLUMNS]

class SheetsCallCenterQueue:
    """Human review queue kept in a shared spreadsheet, one row per escalated order."""

    def __init__(self, spreadsheet_id: Optional[str], worksheet: str,
                 credentials_json: Optional[str]):
        self.spreadsheet_id = spreadsheet_id
        self.worksheet_name = worksheet
        self.credentials_json = credentials_json
        self._worksheet = None

    @property
    def configured(self) -> bool:
        return bool(self.spreadsheet_id and self.credentials_json)

    def _sheet(self):
        if self._worksheet is None:
            info = json.loads(self.credentials_json)
            # private keys pasted into env vars often carry literal \n
            if "private_key" in info:
                info["private_key"] = info["private_key"].replace("\\n", "\n")
            gc = gspread.service_account_from_dict(info)
            self._worksheet = gc.open_by_key(self.spreadsheet_id).worksheet(self.worksheet_name)
        return self._worksheet

    def push(self, record: Dict[str, Any]) -> bool:
        if not self.configured:
            raise IntegrationError("call-center sheet not configured")
        try:
            self._sheet().append_row(record_to_row(record), value_input_option="USER_ENTERED")
        except (gspread.exceptions.GSpreadException, ValueError) as e:
            raise IntegrationError(f"call-center sheet append failed: {e}") from e
        logger.info("Order %s pushed to call-center queue (%s)", record.get("order_number"), record.get("reason"))
        return True

_queue = None

def get_call_center_queue():
    global _queue
    if _queue is None:
        creds = settings.GSHEETS_CREDENTIALS_JSON.get_secret_value() if settings.GSHEETS_CREDENTIALS_JSON else None
        _queue = SheetsCallCenterQueue(settings.GSHEETS_SPREADSHEET_ID, settings.GSHEETS_WORKSHEET, creds)
    return _queue

def set_call_center_queue(queue) -> None:
    global _queue
    _queue = queue
