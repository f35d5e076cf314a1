from match_results import FilePathStr, Span


class CachingFileContents:
    """Original file bytes, read once and shared by every rule of every pass.

    Spans are always expressed against these bytes, so nothing may write
    through this cache; the replacement set's apply step is the only writer."""

    def __init__(self) -> None:
        self.cached_bytes: dict[FilePathStr, bytes] = {}

    def get_bytes(self, filepath: FilePathStr) -> bytes:
        if filepath not in self.cached_bytes:
            with open(filepath, "rb") as f:
                self.cached_bytes[filepath] = f.read()
        return self.cached_bytes[filepath]

    def text_for(self, span: Span) -> str:
        content = self.get_bytes(span.file)
        if span.end > len(content):
            raise ValueError(f"Span [{span.start}, {span.end}) exceeds {span.file}")
        return content[span.start : span.end].decode("utf-8", errors="replace")
