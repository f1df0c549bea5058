# dope_cards.py
from typing import Dict, List, Optional, Any
import logging

import pandas as pd

from config import DOPE_CARDS_KEY, DOPE_RANGES
from engine import ValidationError
from entries import now_ms
from storage import Store

logger = logging.getLogger(__name__)


def blank_ranges() -> Dict[str, Dict[str, str]]:
    return {r: {"elevation": "", "windage": ""} for r in DOPE_RANGES}


class DopeCardStore:
    """Reference cards of elevation/windage per range, one per rifle."""

    def __init__(self, store: Store):
        self.store = store

    def list_cards(self) -> List[Dict[str, Any]]:
        return self.store.get_json(DOPE_CARDS_KEY, []) or []

    def get_card(self, card_id: str) -> Optional[Dict[str, Any]]:
        return next((c for c in self.list_cards() if c.get("id") == card_id), None)

    def save_card(self, rifle_name: str, caliber: str,
                  ranges: Optional[Dict[str, Dict[str, str]]] = None,
                  card_id: Optional[str] = None) -> Dict[str, Any]:
        rifle_name = (rifle_name or "").strip()
        caliber = (caliber or "").strip()
        if not rifle_name or not caliber:
            raise ValidationError("Please enter rifle name and caliber")

        merged = blank_ranges()
        for rng, vals in (ranges or {}).items():
            merged[str(rng)] = {
                "elevation": str((vals or {}).get("elevation", "")).strip(),
                "windage": str((vals or {}).get("windage", "")).strip(),
            }

        cards = self.list_cards()
        if card_id and not any(c.get("id") == card_id for c in cards):
            raise LookupError(f"DOPE card not found: {card_id}")
        card = {
            "id": card_id or str(now_ms()),
            "rifleName": rifle_name,
            "caliber": caliber,
            "ranges": merged,
            "timestamp": now_ms(),
        }
        if card_id:
            cards = [card if c.get("id") == card_id else c for c in cards]
            logger.info("Updated DOPE card %s", card_id)
        else:
            while any(c.get("id") == card["id"] for c in cards):
                card["id"] = str(int(card["id"]) + 1)
            cards.append(card)
            logger.info("Added DOPE card %s", card["id"])
        self.store.set_json(DOPE_CARDS_KEY, cards)
        return card

    def delete_card(self, card_id: str) -> bool:
        cards = self.list_cards()
        keep = [c for c in cards if c.get("id") != card_id]
        if len(keep) == len(cards):
            return False
        self.store.set_json(DOPE_CARDS_KEY, keep)
        logger.info("Deleted DOPE card %s", card_id)
        return True


def card_frame(card: Dict[str, Any]) -> pd.DataFrame:
    ranges = card.get("ranges", {}) or {}
    rows = [{"Range (yds)": int(r) if str(r).isdigit() else r,
             "Elevation": v.get("elevation", ""),
             "Windage": v.get("windage", "")}
            for r, v in ranges.items()]
    df = pd.DataFrame(rows, columns=["Range (yds)", "Elevation", "Windage"])
    if not df.empty:
        df = df.sort_values("Range (yds)", key=lambda s: s.astype(str).str.zfill(6)).reset_index(drop=True)
    return df
