# =============================================================================
# 🗄️ utils/repository.py
# -----------------------------------------------------------------------------
# Dokument-artiger Zugriff auf QR-Codes:
#   find_by_id / find_active / save / delete / count
# Alle SQLAlchemy-Fehler werden nach einem Rollback als UpstreamStoreError
# weitergegeben. Retries sind nicht Aufgabe dieser Schicht.
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models.qr_scan import QRScan
from models.qrcode import QRCode
from utils.errors import UpstreamStoreError

logger = logging.getLogger(__name__)

SORT_FIELDS = {
    "created_at": QRCode.created_at,
    "title": QRCode.title,
    "scan_count": QRCode.scan_count,
    "last_scanned_at": QRCode.last_scanned_at,
}
DEFAULT_SORT = "created_at"


@dataclass(frozen=True)
class QRFilter:
    active: Optional[bool] = True
    content_type: Optional[str] = None
    search: Optional[str] = None
    created_since: Optional[datetime] = None


@dataclass(frozen=True)
class QRSort:
    field: str = DEFAULT_SORT
    descending: bool = True


@dataclass(frozen=True)
class Page:
    number: int = 1
    size: int = 10

    @property
    def offset(self) -> int:
        return (self.number - 1) * self.size


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class QRRepository:
    def __init__(self, db: Session) -> None:
        self.db = db

    # ---------------------------------------------------------------------
    # 🔧 Fehlerbehandlung
    # ---------------------------------------------------------------------
    def _fail(self, action: str, exc: SQLAlchemyError) -> UpstreamStoreError:
        logger.exception(f"❌ Datenbankfehler bei '{action}'")
        try:
            self.db.rollback()
        except SQLAlchemyError:
            logger.warning("⚠️ Rollback fehlgeschlagen")
        return UpstreamStoreError(f"store failure during {action}: {exc}")

    def _apply_filter(self, query, flt: QRFilter):
        if flt.active is not None:
            query = query.filter(QRCode.active == flt.active)
        if flt.content_type:
            query = query.filter(QRCode.type == flt.content_type)
        if flt.search and flt.search.strip():
            pattern = f"%{_escape_like(flt.search.strip().lower())}%"
            query = query.filter(
                func.lower(QRCode.title).like(pattern, escape="\\")
                | func.lower(func.coalesce(QRCode.description, "")).like(pattern, escape="\\")
            )
        if flt.created_since is not None:
            query = query.filter(QRCode.created_at >= flt.created_since)
        return query

    # ---------------------------------------------------------------------
    # 🔍 Lesen
    # ---------------------------------------------------------------------
    def find_by_id(self, qr_id: str, active: Optional[bool] = None) -> Optional[QRCode]:
        try:
            query = self.db.query(QRCode).filter(QRCode.id == qr_id)
            if active is not None:
                query = query.filter(QRCode.active == active)
            return query.first()
        except SQLAlchemyError as exc:
            raise self._fail("find_by_id", exc)

    def exists(self, qr_id: str) -> bool:
        return self.find_by_id(qr_id) is not None

    def find_by_custom_domain(self, domain: str) -> Optional[QRCode]:
        try:
            return (
                self.db.query(QRCode)
                .filter(QRCode.custom_domain == domain, QRCode.active == True)  # noqa: E712
                .first()
            )
        except SQLAlchemyError as exc:
            raise self._fail("find_by_custom_domain", exc)

    def find_active(
        self,
        flt: Optional[QRFilter] = None,
        sort: Optional[QRSort] = None,
        page: Optional[Page] = None,
    ) -> List[QRCode]:
        flt = flt or QRFilter()
        sort = sort or QRSort()
        column = SORT_FIELDS.get(sort.field, SORT_FIELDS[DEFAULT_SORT])
        order = column.desc() if sort.descending else column.asc()
        try:
            query = self._apply_filter(self.db.query(QRCode), flt).order_by(order, QRCode.id)
            if page is not None:
                query = query.offset(page.offset).limit(page.size)
            return query.all()
        except SQLAlchemyError as exc:
            raise self._fail("find_active", exc)

    def count(self, flt: Optional[QRFilter] = None) -> int:
        try:
            query = self._apply_filter(self.db.query(func.count(QRCode.id)), flt or QRFilter(active=None))
            return int(query.scalar() or 0)
        except SQLAlchemyError as exc:
            raise self._fail("count", exc)

    # ---------------------------------------------------------------------
    # 💾 Schreiben
    # ---------------------------------------------------------------------
    def save(self, qr: QRCode) -> QRCode:
        try:
            self.db.add(qr)
            self.db.commit()
            self.db.refresh(qr)
            return qr
        except SQLAlchemyError as exc:
            raise self._fail("save", exc)

    def delete(self, qr: QRCode) -> None:
        try:
            self.db.delete(qr)
            self.db.commit()
        except SQLAlchemyError as exc:
            raise self._fail("delete", exc)

    def add_scan_event(self, scan: QRScan) -> None:
        try:
            self.db.add(scan)
            self.db.commit()
        except SQLAlchemyError as exc:
            raise self._fail("add_scan_event", exc)

    # ---------------------------------------------------------------------
    # 📊 Statistik
    # ---------------------------------------------------------------------
    def total_scans(self) -> int:
        try:
            return int(self.db.query(func.coalesce(func.sum(QRCode.scan_count), 0)).scalar() or 0)
        except SQLAlchemyError as exc:
            raise self._fail("total_scans", exc)

    def content_type_stats(self) -> List[Dict[str, Any]]:
        """Anzahl & Scans je aktivem Inhaltstyp (nur aktive QR-Codes)."""
        try:
            rows: List[Tuple[str, int, Optional[int]]] = (
                self.db.query(QRCode.type, func.count(QRCode.id), func.sum(QRCode.scan_count))
                .filter(QRCode.active == True)  # noqa: E712
                .group_by(QRCode.type)
                .order_by(func.count(QRCode.id).desc())
                .all()
            )
        except SQLAlchemyError as exc:
            raise self._fail("content_type_stats", exc)
        return [
            {"type": t, "count": int(c), "total_scans": int(s or 0)}
            for t, c, s in rows
        ]

    def count_scanned_since(self, since: datetime) -> int:
        try:
            return int(
                self.db.query(func.count(QRCode.id))
                .filter(QRCode.last_scanned_at >= since)
                .scalar()
                or 0
            )
        except SQLAlchemyError as exc:
            raise self._fail("count_scanned_since", exc)

    def stats(self, today_start: datetime, top: int = 5) -> Dict[str, Any]:
        """
        Systemübersicht: Gesamtzahlen, heutige Zahlen, Inhaltstypen sowie
        die neuesten und meistgescannten aktiven QR-Codes (als Modelle).
        """
        return {
            "overview": {
                "total_qrs": self.count(QRFilter(active=None)),
                "active_qrs": self.count(QRFilter(active=True)),
                "inactive_qrs": self.count(QRFilter(active=False)),
                "total_scans": self.total_scans(),
            },
            "today": {
                "new_qrs": self.count(QRFilter(active=True, created_since=today_start)),
                "scans": self.count_scanned_since(today_start),
            },
            "content_types": self.content_type_stats(),
            "recent": self.find_active(QRFilter(), QRSort("created_at"), Page(1, top)),
            "popular": self.find_active(QRFilter(), QRSort("scan_count"), Page(1, top)),
        }
