"""
Unit tests for model helpers and derived fields. No database needed.
"""

from datetime import timedelta

import pytest

from tela.core.plans import Plan, PlanLimits, UNLIMITED, get_plan_limits
from tela.models.account import Account
from tela.models.base import utcnow
from tela.models.conversation import ChatConversation, DEFAULT_TITLE, derive_title
from tela.models.design import DesignProject, DesignStatus
from tela.models.file import UserFile, category_for_mime_type, format_size
from tela.models.memory import MemoryEntry, normalize_tags
from tela.models.task import Task, TaskStatus


class TestTitleDerivation:
    def test_short_message_is_used_verbatim(self):
        assert derive_title("Plan my week") == "Plan my week"

    def test_exactly_fifty_characters_is_not_truncated(self):
        text = "x" * 50
        assert derive_title(text) == text

    def test_long_message_is_truncated_with_ellipsis(self):
        text = "a" * 60
        assert derive_title(text) == "a" * 50 + "..."

    def test_first_user_message_sets_title(self):
        conv = ChatConversation(user_id="u", title=DEFAULT_TITLE, messages=[])
        conv.add_message("user", "How do I deploy this service?")
        assert conv.title == "How do I deploy this service?"

    def test_title_is_not_overwritten_by_later_messages(self):
        conv = ChatConversation(user_id="u", title=DEFAULT_TITLE, messages=[])
        conv.add_message("user", "First question")
        conv.add_message("assistant", "An answer")
        conv.add_message("user", "Second question")
        assert conv.title == "First question"
        assert [m.sequence_number for m in conv.messages] == [0, 1, 2]

    def test_assistant_message_does_not_set_title(self):
        conv = ChatConversation(user_id="u", title=DEFAULT_TITLE, messages=[])
        conv.add_message("assistant", "Hello! How can I help?")
        assert conv.title == DEFAULT_TITLE

    def test_custom_title_is_kept(self):
        conv = ChatConversation(user_id="u", title="Deploy notes", messages=[])
        conv.add_message("user", "Something else entirely")
        assert conv.title == "Deploy notes"


class TestFileCategory:
    @pytest.mark.parametrize("mime, expected", [
        ("image/png", "image"),
        ("IMAGE/JPEG", "image"),
        ("application/pdf", "document"),
        ("text/plain", "document"),
        ("application/vnd.openxmlformats-officedocument.wordprocessingml.document", "document"),
        ("application/json", "data"),
        ("application/xml", "data"),
        ("text/csv", "document"),
        ("application/javascript", "code"),
        ("text/x-python", "document"),
        ("application/x-python-code", "code"),
        ("application/zip", "other"),
        ("", "other"),
    ])
    def test_category_for_mime_type(self, mime, expected):
        assert category_for_mime_type(mime) == expected

    @pytest.mark.parametrize("size, expected", [
        (0, "0 Bytes"),
        (5, "5 Bytes"),
        (1024, "1 KB"),
        (1536, "1.5 KB"),
        (5 * 1024 * 1024, "5 MB"),
    ])
    def test_format_size(self, size, expected):
        assert format_size(size) == expected

    def test_extension_and_description(self):
        f = UserFile(original_name="Report.Final.PDF", mime_type="application/pdf", size=10)
        assert f.extension == "pdf"
        assert f.type_description == "PDF Document"

    def test_update_metadata_merges(self):
        f = UserFile(metadata_={"a": 1, "b": 2})
        f.update_metadata({"b": 3, "c": 4})
        assert f.metadata_ == {"a": 1, "b": 3, "c": 4}


class TestMemoryEntry:
    def test_normalize_tags(self):
        assert normalize_tags([" Work ", "work", "", "URGENT", "urgent "]) == ["work", "urgent"]

    @pytest.mark.parametrize("value", [0, 11, -3])
    def test_importance_out_of_range_is_rejected(self, value):
        entry = MemoryEntry(importance=5)
        with pytest.raises(ValueError):
            entry.set_importance(value)
        assert entry.importance == 5

    def test_add_and_remove_tags(self):
        entry = MemoryEntry(tags=["work"])
        entry.add_tags(["Home", "work"])
        assert entry.tags == ["work", "home"]
        entry.remove_tags(["WORK"])
        assert entry.tags == ["home"]

    def test_record_access(self):
        entry = MemoryEntry(access_count=0)
        entry.record_access()
        entry.record_access()
        assert entry.access_count == 2
        assert entry.last_accessed_at is not None

    def test_is_expired(self):
        assert MemoryEntry(expires_at=utcnow() - timedelta(minutes=1)).is_expired
        assert not MemoryEntry(expires_at=utcnow() + timedelta(days=1)).is_expired
        assert not MemoryEntry(expires_at=None).is_expired


class TestTask:
    def test_overdue_only_when_open(self):
        task = Task(title="t", status=TaskStatus.PENDING.value, due_date=utcnow() - timedelta(days=1))
        assert task.is_overdue
        task.mark_completed()
        assert not task.is_overdue

    def test_days_until_due_rounds_up(self):
        task = Task(title="t", due_date=utcnow() + timedelta(days=2, hours=1))
        assert task.days_until_due == 3
        assert Task(title="t", due_date=None).days_until_due is None


class TestDesignTransitions:
    @pytest.mark.parametrize("current, target, allowed", [
        ("generating", "completed", True),
        ("generating", "failed", True),
        ("failed", "generating", True),
        ("completed", "generating", False),
        ("completed", "failed", False),
        ("failed", "completed", False),
    ])
    def test_can_transition_to(self, current, target, allowed):
        assert DesignProject(status=current).can_transition_to(target) is allowed

    def test_mark_failed_merges_error(self):
        project = DesignProject(status=DesignStatus.GENERATING.value, metadata_={"model": "m1"})
        project.mark_failed("boom")
        assert project.status == "failed"
        assert project.metadata_ == {"model": "m1", "error": "boom"}


class TestPlans:
    def test_free_plan_table(self):
        limits = get_plan_limits("free")
        assert limits == PlanLimits(
            monthly_credits=1000,
            max_conversations=10,
            max_files=50,
            max_memory_entries=100,
            max_tasks_per_month=50,
            priority_support=False,
            advanced_features=False,
        )

    def test_allows(self):
        limits = get_plan_limits(Plan.FREE.value)
        assert limits.allows("max_conversations", 9)
        assert not limits.allows("max_conversations", 10)

    def test_unlimited(self):
        limits = get_plan_limits(Plan.ENTERPRISE.value)
        assert limits.max_files == UNLIMITED
        assert limits.allows("max_files", 10_000_000)

    def test_deduct_credits(self):
        account = Account(plan="free", credits=1)
        assert account.deduct_credits(1)
        assert account.credits == 0
        assert not account.deduct_credits(1)
        assert account.credits == 0
        assert not account.can_perform("ai_request")
