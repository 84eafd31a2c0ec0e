from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from blogapi.core.errors import Forbidden, NotFound
from blogapi.models.device_session import DeviceAuthSession
from blogapi.utils.timeutil import as_utc


logger = logging.getLogger("blog.auth")


class DeviceSessionRegistry:
    """
    Persistent record of the one currently valid refresh token per device.

    Every mutation is a single UPDATE/DELETE statement committed on its own, so
    concurrent requests for the same device are serialized by the database
    rather than by anything in this process.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def create_session(
        self,
        user_id: int,
        device_id: str,
        issued_at: datetime,
        expires_at: datetime,
        device_name: str,
        ip: str,
    ) -> int:
        row = DeviceAuthSession(
            user_id=int(user_id),
            device_id=device_id,
            issued_at=as_utc(issued_at),
            expires_at=as_utc(expires_at),
            device_name=device_name,
            ip=ip,
        )
        self.db.add(row)
        self.db.commit()
        logger.info("session_created user_id=%s device_id=%s", user_id, device_id)
        return int(row.id)

    def rotate_session(
        self,
        device_id: str,
        new_issued_at: datetime,
        new_expires_at: datetime,
        new_ip: str,
        expected_issued_at: Optional[datetime] = None,
    ) -> bool:
        """
        Advance the device's issued_at. True only if exactly one row changed.

        With `expected_issued_at` the update only applies while the row still
        holds that value, so of two racing refreshes exactly one wins.
        """
        stmt = update(DeviceAuthSession).where(DeviceAuthSession.device_id == device_id)
        if expected_issued_at is not None:
            stmt = stmt.where(DeviceAuthSession.issued_at == as_utc(expected_issued_at))
        stmt = stmt.values(
            issued_at=as_utc(new_issued_at),
            expires_at=as_utc(new_expires_at),
            ip=new_ip,
        ).execution_options(synchronize_session=False)
        result = self.db.execute(stmt)
        self.db.commit()
        rotated = result.rowcount == 1
        if not rotated:
            logger.warning("session_rotate_missed device_id=%s", device_id)
        return rotated

    def session_matches(self, device_id: str, issued_at: datetime, user_id: Optional[int] = None) -> bool:
        stmt = select(DeviceAuthSession.id).where(
            DeviceAuthSession.device_id == device_id,
            DeviceAuthSession.issued_at == as_utc(issued_at),
        )
        if user_id is not None:
            stmt = stmt.where(DeviceAuthSession.user_id == int(user_id))
        return self.db.execute(stmt.limit(1)).first() is not None

    def find_session(self, device_id: str) -> Optional[DeviceAuthSession]:
        return self.db.execute(
            select(DeviceAuthSession).where(DeviceAuthSession.device_id == device_id)
        ).scalar_one_or_none()

    def list_sessions(self, user_id: int) -> list[DeviceAuthSession]:
        return list(
            self.db.execute(
                select(DeviceAuthSession)
                .where(DeviceAuthSession.user_id == int(user_id))
                .order_by(DeviceAuthSession.created_at, DeviceAuthSession.id)
            ).scalars()
        )

    def terminate_session(self, device_id: str, issued_at: Optional[datetime] = None) -> bool:
        """Delete the device's row; with `issued_at`, only if it is still current."""
        stmt = delete(DeviceAuthSession).where(DeviceAuthSession.device_id == device_id)
        if issued_at is not None:
            stmt = stmt.where(DeviceAuthSession.issued_at == as_utc(issued_at))
        result = self.db.execute(stmt.execution_options(synchronize_session=False))
        self.db.commit()
        terminated = result.rowcount == 1
        if terminated:
            logger.info("session_terminated device_id=%s", device_id)
        return terminated

    def terminate_owned_session(self, device_id: str, acting_user_id: int) -> None:
        """
        Terminate a device by id on behalf of `acting_user_id`.

        NotFound when no such device exists, Forbidden when it belongs to
        someone else.
        """
        row = self.find_session(device_id)
        if row is None:
            raise NotFound("Device session not found")
        if int(row.user_id) != int(acting_user_id):
            logger.warning("session_terminate_forbidden device_id=%s acting_user_id=%s", device_id, acting_user_id)
            raise Forbidden("Device session belongs to another user")

        result = self.db.execute(
            delete(DeviceAuthSession)
            .where(
                DeviceAuthSession.device_id == device_id,
                DeviceAuthSession.user_id == int(acting_user_id),
            )
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        if result.rowcount != 1:
            # Removed concurrently between lookup and delete
            raise NotFound("Device session not found")
        logger.info("session_terminated device_id=%s by_user=%s", device_id, acting_user_id)

    def terminate_other_sessions(self, user_id: int, keep_device_id: str) -> int:
        result = self.db.execute(
            delete(DeviceAuthSession)
            .where(
                DeviceAuthSession.user_id == int(user_id),
                DeviceAuthSession.device_id != keep_device_id,
            )
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        logger.info("sessions_terminated_others user_id=%s count=%s", user_id, result.rowcount)
        return int(result.rowcount or 0)

    def delete_user_sessions(self, user_id: int) -> int:
        result = self.db.execute(
            delete(DeviceAuthSession)
            .where(DeviceAuthSession.user_id == int(user_id))
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        logger.info("sessions_deleted user_id=%s count=%s", user_id, result.rowcount)
        return int(result.rowcount or 0)

    def reset(self) -> None:
        self.db.execute(delete(DeviceAuthSession).execution_options(synchronize_session=False))
        self.db.commit()
