from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from dataclasses_json import dataclass_json

from caching_file_contents import CachingFileContents
from match_results import Edit, FilePathStr, Span

SPAN_ALREADY_CLAIMED = "span already claimed"


class ConflictPolicy(Enum):
    # Only proposals for exactly the same span collide. Partially overlapping
    # edits are both accepted and only caught when applying.
    SPAN_IDENTITY = "span-identity"
    # Any intersection with an accepted span in the same file collides.
    INTERVAL_OVERLAP = "interval-overlap"


class DiagnosticKind(Enum):
    SPAN_CONFLICT = "span-conflict"
    APPLY_FAILURE = "apply-failure"


@dataclass_json
@dataclass
class Diagnostic:
    kind: DiagnosticKind
    message: str
    edit: Edit
    # The accepted edit that claimed the span first, for conflicts.
    claimed_by: Edit | None = None


@dataclass(frozen=True)
class Proposal:
    accepted: bool
    reason: str | None = None


ACCEPTED = Proposal(accepted=True)


@dataclass
class ApplyResult:
    rewritten: dict[FilePathStr, bytes] = field(default_factory=dict)
    failed: list[Diagnostic] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


@dataclass_json
@dataclass
class ReplacementReport:
    policy: str
    edits: list[Edit]
    diagnostics: list[Diagnostic]


class ReplacementSet:
    """
    Accumulates edits from every rule of every pass, for multiple files.
    All spans refer to the untouched original contents of their file, so the
    edits are independent of one another; they are applied per file in
    descending offset order so earlier offsets stay valid.
    When two edits claim the same span, the first one proposed wins.
    """

    def __init__(self, policy: ConflictPolicy = ConflictPolicy.SPAN_IDENTITY):
        self.policy = policy
        self.accepted: dict[Span, Edit] = {}
        self.diagnostics: list[Diagnostic] = []

    def __len__(self) -> int:
        return len(self.accepted)

    def _claimant(self, span: Span) -> Edit | None:
        if span in self.accepted:
            return self.accepted[span]
        if self.policy == ConflictPolicy.INTERVAL_OVERLAP:
            for other in self.accepted.values():
                if other.span.overlaps(span):
                    return other
        return None

    def propose(self, edit: Edit) -> Proposal:
        claimant = self._claimant(edit.span)
        if claimant is None:
            self.accepted[edit.span] = edit
            return ACCEPTED

        self.diagnostics.append(
            Diagnostic(
                kind=DiagnosticKind.SPAN_CONFLICT,
                message=SPAN_ALREADY_CLAIMED,
                edit=edit,
                claimed_by=claimant,
            )
        )
        if claimant.new_text == edit.new_text:
            print(f"Dropped duplicate {edit.origin.value} edit at {edit.span.file}:{edit.span.start}")
        else:
            print(
                f"Rejected {edit.origin.value} edit at {edit.span.file}:{edit.span.start}:"
                f" {SPAN_ALREADY_CLAIMED} by {claimant.origin.value}"
                f" ({claimant.new_text!r} vs {edit.new_text!r})"
            )
        return Proposal(accepted=False, reason=SPAN_ALREADY_CLAIMED)

    def edits(self) -> list[Edit]:
        return sorted(self.accepted.values(), key=lambda e: e.span)

    def edits_by_file(self) -> dict[FilePathStr, list[Edit]]:
        by_file: dict[FilePathStr, list[Edit]] = {}
        for edit in self.edits():
            by_file.setdefault(edit.span.file, []).append(edit)
        return by_file

    def rejected(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.kind == DiagnosticKind.SPAN_CONFLICT]

    def apply(self, contents: CachingFileContents, write: bool = True) -> ApplyResult:
        """Apply every accepted edit against the original contents.

        Edits that cannot be applied are reported in the result and skipped;
        the remaining edits for the same file are still applied."""
        result = ApplyResult()
        for filepath, file_edits in self.edits_by_file().items():
            original = contents.get_bytes(filepath)
            with open(filepath, "rb") as f:
                on_disk = f.read()

            def fail(edit: Edit, why: str):
                d = Diagnostic(kind=DiagnosticKind.APPLY_FAILURE, message=why, edit=edit)
                result.failed.append(d)
                self.diagnostics.append(d)
                print(f"Could not apply {edit.origin.value} edit at {filepath}:{edit.span.start}: {why}")

            if on_disk != original:
                for edit in file_edits:
                    fail(edit, "file changed since it was analyzed")
                continue

            content = original
            # Start of the lowest edit applied so far; later (lower) edits must end before it.
            applied_floor = len(original)
            for edit in sorted(file_edits, key=lambda e: (e.span.start, e.span.end), reverse=True):
                span = edit.span
                if span.end > len(original):
                    fail(edit, f"span [{span.start}, {span.end}) is out of bounds")
                    continue
                if span.end > applied_floor:
                    fail(edit, "span overlaps another applied edit")
                    continue
                content = content[: span.start] + edit.new_text.encode() + content[span.end :]
                applied_floor = span.start

            result.rewritten[filepath] = content
            if write and content != original:
                with open(filepath, "wb") as f:
                    f.write(content)

        if result.failed:
            print("Skipped some replacements.")
        return result

    def report(self) -> ReplacementReport:
        return ReplacementReport(
            policy=self.policy.value, edits=self.edits(), diagnostics=list(self.diagnostics)
        )

    def export_json(self, path: Path):
        path.write_text(self.report().to_json(indent=2), encoding="utf-8")  # type: ignore[attr-defined]
