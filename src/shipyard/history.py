# history.py
from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

import sqlalchemy as sa
from pydantic import BaseModel, Field
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship, selectinload, sessionmaker

from .state import StateStore


# -------------------- Tables --------------------

class Base(DeclarativeBase):
    pass


class Run(Base):
    __tablename__ = "runs"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    requested: Mapped[str] = mapped_column(sa.Text, nullable=False)
    status: Mapped[str] = mapped_column(sa.Text, nullable=False)
    params: Mapped[dict] = mapped_column(sa.JSON, nullable=False, default=dict)
    started_at: Mapped[datetime] = mapped_column(sa.DateTime(timezone=True), nullable=False)
    finished_at: Mapped[datetime] = mapped_column(sa.DateTime(timezone=True), nullable=False)
    targets: Mapped[List["TargetRun"]] = relationship(
        back_populates="run",
        cascade="all, delete-orphan",
        order_by="TargetRun.position",
    )


class TargetRun(Base):
    __tablename__ = "target_runs"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    run_id: Mapped[int] = mapped_column(sa.ForeignKey("runs.id", ondelete="CASCADE"), nullable=False)
    position: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    name: Mapped[str] = mapped_column(sa.Text, nullable=False)
    state: Mapped[str] = mapped_column(sa.Text, nullable=False)
    duration: Mapped[Optional[float]] = mapped_column(sa.Float, nullable=True)
    error: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    run: Mapped[Run] = relationship(back_populates="targets")


# -------------------- Schemas --------------------

class TargetSummary(BaseModel):
    name: str
    state: str
    duration: Optional[float] = None
    error: Optional[str] = None


class RunSummary(BaseModel):
    id: int
    requested: str
    status: str
    params: Dict[str, str] = Field(default_factory=dict)
    started_at: datetime
    finished_at: datetime
    targets: List[TargetSummary] = Field(default_factory=list)


def _ts(value: Optional[float]) -> datetime:
    if value is None:
        return datetime.now(timezone.utc)
    return datetime.fromtimestamp(value, tz=timezone.utc)


# -------------------- Store --------------------

class RunHistory:
    """Run log in SQLite, one row per `shipyard run` plus one per target."""

    def __init__(self, location: str | Path):
        location = str(location)
        if "://" in location:
            url = location
        else:
            path = Path(location).expanduser()
            path.parent.mkdir(parents=True, exist_ok=True)
            url = f"sqlite:///{path}"
        self.engine = sa.create_engine(url)
        Base.metadata.create_all(self.engine)
        self._session = sessionmaker(self.engine, expire_on_commit=False)

    def record(
        self,
        requested: str,
        params: Dict[str, str],
        store: StateStore,
        status: str,
    ) -> int:
        with self._session() as s:
            with s.begin():
                run = Run(
                    requested=requested,
                    status=status,
                    params=dict(params),
                    started_at=_ts(store.started_at),
                    finished_at=datetime.now(timezone.utc),
                )
                for position, rec in enumerate(store.records()):
                    run.targets.append(
                        TargetRun(
                            position=position,
                            name=rec.name,
                            state=rec.state.value,
                            duration=rec.duration,
                            error=rec.error,
                        )
                    )
                s.add(run)
                s.flush()
                run_id = run.id
        return run_id

    def recent(self, limit: int = 10) -> List[RunSummary]:
        q = (
            sa.select(Run)
            .options(selectinload(Run.targets))
            .order_by(Run.id.desc())
            .limit(limit)
        )
        with self._session() as s:
            runs = s.execute(q).scalars().all()
            return [
                RunSummary(
                    id=r.id,
                    requested=r.requested,
                    status=r.status,
                    params={k: str(v) for k, v in (r.params or {}).items()},
                    started_at=r.started_at,
                    finished_at=r.finished_at,
                    targets=[
                        TargetSummary(name=t.name, state=t.state, duration=t.duration, error=t.error)
                        for t in r.targets
                    ],
                )
                for r in runs
            ]

    def close(self) -> None:
        self.engine.dispose()
