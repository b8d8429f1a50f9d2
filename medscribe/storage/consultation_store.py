"""Local consultation history stored as JSON files."""

import json
import logging
from pathlib import Path
from datetime import datetime
from typing import Dict, Any, Optional, List

logger = logging.getLogger(__name__)


class ConsultationStore:
    """Saves finished consultations (text only, never audio) under the data directory."""

    def __init__(self, data_dir: str = "./data", max_history_items: int = 100):
        """Initialize consultation store.

        Args:
            data_dir: Base directory for storing all data
            max_history_items: Oldest consultations beyond this count are pruned on save
        """
        self.data_dir = Path(data_dir)
        self.consultations_dir = self.data_dir / "consultations"
        self.max_history_items = max_history_items

        self.consultations_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"ConsultationStore initialized with data_dir: {self.data_dir}")

    def save(self, result: Dict[str, Any], session_info: Optional[Dict[str, Any]] = None,
             note: Optional[Dict[str, Any]] = None) -> str:
        """Save a consultation and return its id.

        Args:
            result: SessionController.stop() result (transcript, segments, medical_info, session_id)
            session_info: SessionInfo.to_dict() for the session, if known
            note: ClinicalNote.to_dict(), if one was generated
        """
        saved_at = datetime.now()
        session_id = result.get("session_id") or "unknown"
        consultation_id = f"{saved_at.strftime('%Y%m%d_%H%M%S_%f')}_{session_id[:8]}"

        record = {
            "consultation_id": consultation_id,
            "saved_at": saved_at.isoformat(),
            "session": session_info or {"session_id": session_id},
            "transcript": result.get("transcript", ""),
            "segments": result.get("segments", []),
            "medical_info": result.get("medical_info", {}),
            "note": note,
        }

        path = self.consultations_dir / f"{consultation_id}.json"
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(record, f, indent=2)
        logger.info(f"Consultation saved: {path}")

        self._prune()
        return consultation_id

    def attach_note(self, consultation_id: str, note: Dict[str, Any]) -> bool:
        """Add or replace the note on a saved consultation."""
        record = self.load(consultation_id)
        if record is None:
            return False
        record["note"] = note
        with open(self.consultations_dir / f"{consultation_id}.json", 'w', encoding='utf-8') as f:
            json.dump(record, f, indent=2)
        return True

    def load(self, consultation_id: str) -> Optional[Dict[str, Any]]:
        path = self.consultations_dir / f"{consultation_id}.json"
        if not path.exists():
            logger.warning(f"Consultation not found: {path}")
            return None

        try:
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error loading consultation {consultation_id}: {e}")
            return None

    def list_consultations(self) -> List[Dict[str, Any]]:
        """Summaries of saved consultations, newest first."""
        summaries = []
        for consultation_id in self._ids_newest_first():
            record = self.load(consultation_id)
            if record is None:
                continue
            transcript = record.get("transcript", "")
            summaries.append({
                "consultation_id": consultation_id,
                "saved_at": record.get("saved_at"),
                "specialty": record.get("session", {}).get("specialty"),
                "preview": transcript[:80],
                "has_note": record.get("note") is not None,
            })
        return summaries

    def delete(self, consultation_id: str) -> bool:
        path = self.consultations_dir / f"{consultation_id}.json"
        if not path.exists():
            return False
        path.unlink()
        logger.info(f"Consultation deleted: {consultation_id}")
        return True

    def _ids_newest_first(self) -> List[str]:
        # Ids start with a sortable timestamp
        return sorted((p.stem for p in self.consultations_dir.glob("*.json")), reverse=True)

    def _prune(self) -> int:
        excess = self._ids_newest_first()[self.max_history_items:]
        for consultation_id in excess:
            self.delete(consultation_id)
        if excess:
            logger.info(f"Pruned {len(excess)} old consultations")
        return len(excess)

    def get_storage_stats(self) -> Dict[str, Any]:
        files = list(self.consultations_dir.glob("*.json"))
        total_size = sum(f.stat().st_size for f in files)
        return {
            "consultation_count": len(files),
            "total_size_bytes": total_size,
            "data_directory": str(self.data_dir),
        }
