"""
Data access gateway.

A narrow CRUD + query surface over the persisted exam entities. The session
controller, scoring engine and grading workbench only talk to storage
through this class, so storage failures are translated into domain errors in
one place.
"""
import logging
from contextlib import contextmanager

from django.db import DatabaseError, IntegrityError, transaction

from exams.exceptions import NotFound, TransientIOError
from exams.models import Exam, Question, QuestionOption, Submission, Answer, UserProfile

logger = logging.getLogger(__name__)


class DataGateway:
    ENTITIES = {
        'exams': Exam,
        'questions': Question,
        'question_options': QuestionOption,
        'submissions': Submission,
        'answers': Answer,
        'profiles': UserProfile,
    }

    def __init__(self, using='default'):
        self.using = using

    def model_for(self, entity):
        try:
            return self.ENTITIES[entity]
        except KeyError:
            raise ValueError(f"Unknown entity: {entity}")

    def _queryset(self, entity):
        return self.model_for(entity).objects.using(self.using)

    @contextmanager
    def _storage(self, operation, entity):
        try:
            yield
        except IntegrityError:
            raise
        except DatabaseError as e:
            logger.warning(f"Gateway {operation} on {entity} failed: {e}")
            raise TransientIOError() from e

    def atomic(self):
        return transaction.atomic(using=self.using)

    # =========================================================================
    # READS
    # =========================================================================

    def get(self, entity, filter=None, order=None, select_related=(), prefetch_related=()):
        with self._storage('get', entity):
            queryset = self._queryset(entity).filter(**(filter or {}))
            if select_related:
                queryset = queryset.select_related(*select_related)
            if prefetch_related:
                queryset = queryset.prefetch_related(*prefetch_related)
            if order:
                queryset = queryset.order_by(*order)
            return list(queryset)

    def get_one(self, entity, filter, select_related=(), for_update=False):
        model = self.model_for(entity)
        with self._storage('get_one', entity):
            queryset = self._queryset(entity)
            if select_related:
                queryset = queryset.select_related(*select_related)
            if for_update:
                queryset = queryset.select_for_update(of=("self",))
            try:
                return queryset.get(**filter)
            except model.DoesNotExist:
                raise NotFound(f"{model._meta.verbose_name.capitalize()} not found.")

    def count(self, entity, filter=None):
        with self._storage('count', entity):
            return self._queryset(entity).filter(**(filter or {})).count()

    # =========================================================================
    # WRITES
    # =========================================================================

    def insert(self, entity, values):
        with self._storage('insert', entity):
            return self._queryset(entity).create(**values)

    def upsert(self, entity, key_fields, values=None, create_values=None):
        """
        Create or update the single row identified by ``key_fields``.

        ``values`` are written on both paths; ``create_values`` only when the
        row is new. Returns ``(row, created)``.
        """
        values = values or {}
        with self._storage('upsert', entity):
            return self._queryset(entity).update_or_create(
                defaults=values,
                create_defaults={**(create_values or {}), **values},
                **key_fields
            )

    def update(self, entity, id, patch, expect=None):
        """
        Apply ``patch`` to row ``id``. With ``expect`` the update only happens
        while the row still matches those field values (compare-and-set).
        Returns the number of rows changed.
        """
        with self._storage('update', entity):
            return self._queryset(entity).filter(pk=id, **(expect or {})).update(**patch)

    def delete(self, entity, id):
        model = self.model_for(entity)
        with self._storage('delete', entity):
            deleted, _ = self._queryset(entity).filter(pk=id).delete()
        if not deleted:
            raise NotFound(f"{model._meta.verbose_name.capitalize()} not found.")
