"""Test transfer planning for each mode"""

import os

import pytest

from dumpsplit.config import TransferMode
from dumpsplit.errors import MissingPartError
from dumpsplit.pipeline.chunker import Part
from dumpsplit.pipeline.planner import PlanContext, TransferPlanner, parse_names


def _split_context(work_dir, count=3):
    parts = [
        Part(index=i, path=work_dir / f"vmdump.0.parta{'abc'[i]}", offset=i * 10, size=10)
        for i in range(count)
    ]
    return PlanContext(
        work_dir=work_dir,
        manifest_path=work_dir / "vmdump.0.meta",
        source_digest_path=work_dir / "vmdump.0.md5",
        parts=list(reversed(parts))
    )


class TestParseNames:
    """Test the -m list parsing"""

    def test_commas_and_spaces(self):
        assert parse_names("a, b,c\td") == ["a", "b", "c", "d"]

    def test_empty_entries_dropped(self):
        assert parse_names(",a,,b,") == ["a", "b"]

    def test_sequence(self):
        assert parse_names(["a,b", "c"]) == ["a", "b", "c"]


class TestFullPlan:
    """Test the full upload plan"""

    def test_manifest_and_digest_first(self, temp_work_dir):
        plan = TransferPlanner().plan(TransferMode.FULL, _split_context(temp_work_dir))

        assert [p.name for p in plan.artifacts] == [
            "vmdump.0.meta",
            "vmdump.0.md5",
            "vmdump.0.partaa",
            "vmdump.0.partab",
            "vmdump.0.partac",
        ]
        assert plan.missing is False
        assert plan.manual == []

    def test_no_parts(self, temp_work_dir):
        plan = TransferPlanner().plan(TransferMode.FULL, _split_context(temp_work_dir, 0))
        assert [p.name for p in plan.artifacts] == ["vmdump.0.meta", "vmdump.0.md5"]

    def test_requires_manifest(self, temp_work_dir):
        with pytest.raises(ValueError):
            TransferPlanner().plan(TransferMode.FULL, PlanContext(work_dir=temp_work_dir))


class TestDryRunPlan:
    """Test the no-upload plan"""

    def test_empty_transfer_list(self, temp_work_dir):
        plan = TransferPlanner().plan(TransferMode.DRY_RUN, _split_context(temp_work_dir))

        assert plan.artifacts == []
        assert [p.name for p in plan.manual][:2] == ["vmdump.0.meta", "vmdump.0.md5"]
        assert len(plan.manual) == 5


class TestSelectivePlan:
    """Test the re-upload plan"""

    def test_named_parts(self, temp_work_dir):
        for name in ("dump.part01", "dump.part02"):
            (temp_work_dir / name).write_bytes(b"x")

        plan = TransferPlanner().plan(TransferMode.SELECTIVE, PlanContext(
            work_dir=temp_work_dir,
            requested=["dump.part01", "dump.part02"]
        ))

        assert plan.artifacts == [temp_work_dir / "dump.part01", temp_work_dir / "dump.part02"]
        assert plan.missing is True

    def test_absolute_names(self, temp_work_dir, temp_dir):
        target = temp_dir / "dump.part01"
        target.write_bytes(b"x")

        plan = TransferPlanner().plan(TransferMode.SELECTIVE, PlanContext(
            work_dir=temp_work_dir,
            requested=[str(target)]
        ))
        assert plan.artifacts == [target]

    def test_any_missing_fails_everything(self, temp_work_dir):
        (temp_work_dir / "dump.part01").write_bytes(b"x")

        with pytest.raises(MissingPartError) as excinfo:
            TransferPlanner().plan(TransferMode.SELECTIVE, PlanContext(
                work_dir=temp_work_dir,
                requested=["dump.part01", "dump.part02", "dump.part03"],
                hint="have you changed directory?"
            ))

        assert excinfo.value.missing == ["dump.part02", "dump.part03"]
        assert excinfo.value.hint == "have you changed directory?"

    def test_directory_is_not_a_part(self, temp_work_dir):
        (temp_work_dir / "dump.part01").mkdir()
        with pytest.raises(MissingPartError):
            TransferPlanner().plan(TransferMode.SELECTIVE, PlanContext(
                work_dir=temp_work_dir,
                requested=["dump.part01"]
            ))

    @pytest.mark.skipif(os.geteuid() == 0, reason="root can read anything")
    def test_unreadable_part(self, temp_work_dir):
        part = temp_work_dir / "dump.part01"
        part.write_bytes(b"x")
        part.chmod(0)
        try:
            with pytest.raises(MissingPartError):
                TransferPlanner().plan(TransferMode.SELECTIVE, PlanContext(
                    work_dir=temp_work_dir,
                    requested=["dump.part01"]
                ))
        finally:
            part.chmod(0o644)

    def test_no_names(self, temp_work_dir):
        with pytest.raises(ValueError):
            TransferPlanner().plan(TransferMode.SELECTIVE, PlanContext(
                work_dir=temp_work_dir,
                requested=[" , "]
            ))
