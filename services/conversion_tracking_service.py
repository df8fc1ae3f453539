"""
ConversionTrackingService - records conversion events and keeps the clinic,
variant and session counters in step with them.
"""

import logging
from typing import Any, Callable, Dict, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError

from repositories.clinic_repository import ClinicRepository
from repositories.conversion_event_repository import ConversionEventRepository
from repositories.variant_test_repository import VariantTestRepository
from repositories.visitor_session_repository import VisitorSessionRepository
from services.common.errors import StorageError, ValidationError
from services.enums import ConversionType
from services.growth_tables import CONVERSION_VALUES
from services.traffic_signals import derive_browser, derive_device_type, derive_traffic_source
from utils.datetime_utils import utc_now, ensure_utc

logger = logging.getLogger(__name__)


class ConversionTrackingService:
    """
    The event row is the source of truth. It is committed first; the three
    counter projections are then applied one at a time, each in its own
    transaction, and a failing projection is logged without touching the
    event. Drifted counters are repaired with rebuild_conversion_counters.
    """

    def __init__(self, conversion_event_repository: ConversionEventRepository,
                 clinic_repository: ClinicRepository,
                 variant_test_repository: VariantTestRepository,
                 visitor_session_repository: VisitorSessionRepository,
                 conversion_values: Mapping[str, int] = CONVERSION_VALUES,
                 clock: Callable = utc_now):
        self.conversion_event_repository = conversion_event_repository
        self.clinic_repository = clinic_repository
        self.variant_test_repository = variant_test_repository
        self.visitor_session_repository = visitor_session_repository
        self.conversion_values = conversion_values
        self.clock = clock

    def track(self, event_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Record one conversion.

        Args:
            event_data: type, clinic_slug, session_id (required); page_slug,
                test_id, variant_id, visitor_id, referrer, user_agent,
                viewport_width, metadata (optional). Any 'value' is ignored.

        Returns:
            The stored event as a dict, including its id and value

        Raises:
            ValidationError: Unknown type or missing identifiers; nothing written
            StorageError: The event itself could not be written
        """
        conversion_type = event_data.get('type')
        self._validate(event_data)

        value = self.conversion_values[conversion_type]
        referrer = event_data.get('referrer') or None
        metadata = dict(event_data.get('metadata') or {})
        metadata.update({
            'device': derive_device_type(event_data.get('viewport_width')),
            'browser': derive_browser(event_data.get('user_agent')),
            'source': derive_traffic_source(referrer),
        })
        occurred_at = self.clock()

        try:
            event = self.conversion_event_repository.create(
                clinic_slug=event_data['clinic_slug'],
                conversion_type=conversion_type,
                occurred_at=occurred_at,
                referrer=referrer,
                page_slug=event_data.get('page_slug'),
                test_id=event_data.get('test_id'),
                variant_id=event_data.get('variant_id'),
                visitor_id=event_data.get('visitor_id'),
                session_id=event_data['session_id'],
                value=value,
                event_metadata=metadata,
            )
            self.conversion_event_repository.commit()
        except SQLAlchemyError as e:
            self.conversion_event_repository.rollback()
            raise StorageError("Could not record conversion event") from e

        self._update_clinic_counters(event.clinic_slug, conversion_type, occurred_at)
        if event.variant_id:
            self._update_variant_results(event.clinic_slug, event.test_id, event.variant_id)
        self._update_session(event.session_id, value)

        logger.info(f"Conversion tracked: {conversion_type} for {event.clinic_slug} (event {event.id})")
        return event.to_dict()

    # Convenience wrappers for the common call sites

    def track_call_click(self, clinic_slug: str, session_id: str, phone_number: str,
                         page_slug: Optional[str] = None, **extra) -> Dict[str, Any]:
        return self._track_typed(ConversionType.CALL, clinic_slug, session_id, page_slug,
                                 {'cta_text': f"Call {phone_number}", 'element_id': 'phone-cta'}, extra)

    def track_form_submission(self, clinic_slug: str, session_id: str, form_type: str,
                              page_slug: Optional[str] = None, **extra) -> Dict[str, Any]:
        # Form contents are deliberately not stored
        return self._track_typed(ConversionType.FORM, clinic_slug, session_id, page_slug,
                                 {'form_type': form_type, 'element_id': f"{form_type}-form"}, extra)

    def track_cta_click(self, clinic_slug: str, session_id: str, cta_text: str, element_id: str,
                        page_slug: Optional[str] = None, **extra) -> Dict[str, Any]:
        return self._track_typed(ConversionType.CTA_CLICK, clinic_slug, session_id, page_slug,
                                 {'cta_text': cta_text, 'element_id': element_id}, extra)

    def track_email_signup(self, clinic_slug: str, session_id: str,
                           page_slug: Optional[str] = None, **extra) -> Dict[str, Any]:
        return self._track_typed(ConversionType.EMAIL, clinic_slug, session_id, page_slug,
                                 {'element_id': 'email-signup'}, extra)

    def track_booking(self, clinic_slug: str, session_id: str, service_type: str,
                      appointment_date, page_slug: Optional[str] = None, **extra) -> Dict[str, Any]:
        return self._track_typed(ConversionType.BOOKING, clinic_slug, session_id, page_slug,
                                 {'service_type': service_type,
                                  'appointment_date': ensure_utc(appointment_date).isoformat(),
                                  'element_id': 'booking-form'}, extra)

    def rebuild_conversion_counters(self, clinic_slug: str) -> Dict[str, Any]:
        """
        Recompute a clinic's counters from its stored events.

        Raises:
            StorageError: The events could not be read or counters written
        """
        try:
            events = self.conversion_event_repository.find_all_for_clinic(clinic_slug)
            counts = {t.value: 0 for t in ConversionType}
            last_at = None
            for event in events:
                if event.conversion_type in counts:
                    counts[event.conversion_type] += 1
                occurred = ensure_utc(event.occurred_at)
                if last_at is None or occurred > last_at:
                    last_at = occurred

            updated = self.clinic_repository.overwrite_conversion_counters(clinic_slug, counts, last_at)
            self.clinic_repository.commit()
        except SQLAlchemyError as e:
            self.clinic_repository.rollback()
            raise StorageError(f"Could not rebuild counters for clinic {clinic_slug}") from e

        if not updated:
            logger.warning(f"Counter rebuild found no clinic row for {clinic_slug}")
        logger.info(f"Rebuilt conversion counters for {clinic_slug} from {len(events)} events")
        return {
            'clinic_slug': clinic_slug,
            'events': len(events),
            'counts': counts,
            'total': sum(counts.values()),
            'last_conversion_at': last_at.isoformat() if last_at else None,
        }

    def _track_typed(self, conversion_type: ConversionType, clinic_slug: str, session_id: str,
                     page_slug: Optional[str], metadata: Dict[str, Any], extra: Dict[str, Any]):
        data = dict(extra)
        data.update({
            'type': conversion_type.value,
            'clinic_slug': clinic_slug,
            'session_id': session_id,
            'page_slug': page_slug,
            'metadata': {**(extra.get('metadata') or {}), **metadata},
        })
        return self.track(data)

    def _validate(self, event_data: Dict[str, Any]) -> None:
        if not isinstance(event_data, dict):
            raise ValidationError("Conversion payload must be an object")
        conversion_type = event_data.get('type')
        if not isinstance(conversion_type, str) or conversion_type not in self.conversion_values:
            raise ValidationError(f"Unknown conversion type {conversion_type!r}")
        for field in ('clinic_slug', 'session_id'):
            value = event_data.get(field)
            if not isinstance(value, str) or not value.strip():
                raise ValidationError(f"{field} is required")
        metadata = event_data.get('metadata')
        if metadata is not None and not isinstance(metadata, dict):
            raise ValidationError("metadata must be an object")

    def _update_clinic_counters(self, clinic_slug: str, conversion_type: str, occurred_at) -> None:
        try:
            updated = self.clinic_repository.increment_conversion_counters(
                clinic_slug, conversion_type, occurred_at
            )
            self.clinic_repository.commit()
            if not updated:
                logger.warning(f"No clinic row for {clinic_slug}; conversion counters not updated")
        except SQLAlchemyError as e:
            self.clinic_repository.rollback()
            logger.warning(f"Failed to update conversion counters for {clinic_slug}: {e}")

    def _update_variant_results(self, clinic_slug: str, test_id: Optional[str], variant_id: str) -> None:
        try:
            if test_id:
                test_ids = [test_id]
            else:
                test_ids = [t.id for t in self.variant_test_repository.find_running(clinic_slug)]
            updated = self.variant_test_repository.increment_variant_conversions(test_ids, variant_id)
            self.variant_test_repository.commit()
            if not updated:
                logger.warning(f"Variant {variant_id} not found in any test for {clinic_slug}")
        except SQLAlchemyError as e:
            self.variant_test_repository.rollback()
            logger.warning(f"Failed to update results for variant {variant_id}: {e}")

    def _update_session(self, session_id: str, value: int) -> None:
        try:
            updated = self.visitor_session_repository.mark_converted(session_id, value)
            self.visitor_session_repository.commit()
            if not updated:
                logger.warning(f"Session {session_id} not found; conversion flag not set")
        except SQLAlchemyError as e:
            self.visitor_session_repository.rollback()
            logger.warning(f"Failed to update session {session_id} with conversion: {e}")
