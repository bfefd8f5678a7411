"""Code execution domain types: languages, limits, requests, normalized results."""

from __future__ import annotations

from dataclasses import dataclass, field

# --- Languages ---


@dataclass(frozen=True)
class LanguageSpec:
    """How one language is run and syntax-checked inside a sandbox.

    ``run`` and ``check`` are argv templates; ``{file}`` is replaced by the
    sandbox path of the source file.
    """

    name: str
    image: str
    filename: str
    run: tuple[str, ...]
    check: tuple[str, ...] | None = None
    aliases: tuple[str, ...] = ()


LANGUAGES: dict[str, LanguageSpec] = {
    spec.name: spec
    for spec in (
        LanguageSpec(
            "python",
            "python:3.12-slim",
            "main.py",
            ("python3", "{file}"),
            ("python3", "-m", "py_compile", "{file}"),
            aliases=("py", "python3"),
        ),
        LanguageSpec(
            "javascript",
            "node:20-slim",
            "main.js",
            ("node", "{file}"),
            ("node", "--check", "{file}"),
            aliases=("js", "node"),
        ),
        LanguageSpec(
            "typescript",
            "node:20-slim",
            "main.ts",
            ("npx", "--yes", "ts-node", "{file}"),
            ("npx", "--yes", "tsc", "--noEmit", "{file}"),
            aliases=("ts",),
        ),
        LanguageSpec(
            "bash",
            "bash:5.2",
            "main.sh",
            ("bash", "{file}"),
            ("bash", "-n", "{file}"),
            aliases=("sh", "shell"),
        ),
        LanguageSpec(
            "ruby",
            "ruby:3.3-slim",
            "main.rb",
            ("ruby", "{file}"),
            ("ruby", "-c", "{file}"),
            aliases=("rb",),
        ),
        LanguageSpec(
            "php",
            "php:8.3-cli",
            "main.php",
            ("php", "{file}"),
            ("php", "-l", "{file}"),
        ),
        LanguageSpec(
            "go",
            "golang:1.22-alpine",
            "main.go",
            ("go", "run", "{file}"),
            ("gofmt", "-e", "{file}"),
            aliases=("golang",),
        ),
        LanguageSpec(
            "rust",
            "rust:1.77-slim",
            "main.rs",
            ("sh", "-c", "rustc -o /tmp/a.out {file} && /tmp/a.out"),
            ("rustc", "--emit=metadata", "-o", "/tmp/check", "{file}"),
            aliases=("rs",),
        ),
        LanguageSpec(
            "java",
            "eclipse-temurin:21-jdk",
            "Main.java",
            ("java", "{file}"),
        ),
        LanguageSpec(
            "r",
            "r-base:4.3.3",
            "main.R",
            ("Rscript", "{file}"),
        ),
    )
}

_ALIASES: dict[str, str] = {
    alias: spec.name for spec in LANGUAGES.values() for alias in (spec.name, *spec.aliases)
}


def normalize_language(language: str) -> str | None:
    """Map a language name or alias to its canonical name, or None if unknown."""
    return _ALIASES.get(language.strip().lower())


def render_argv(template: tuple[str, ...], file_path: str) -> list[str]:
    """Substitute ``{file}`` into an argv template."""
    return [part.replace("{file}", file_path) for part in template]


# --- Requests and limits ---


@dataclass(frozen=True)
class ExecutionLimits:
    """Resource ceilings passed through to every provider."""

    timeout_seconds: float
    memory_mb: int = 256
    cpu_percent: int = 50
    pids_limit: int = 100
    allow_network: bool = False
    max_output_bytes: int = 1_000_000


@dataclass(frozen=True)
class ExecutionRequest:
    """A single sandboxed invocation."""

    language: str
    code: str
    stdin: str | None = None
    # Replaces the language's run command (used for syntax checks).
    argv: tuple[str, ...] | None = None


@dataclass
class ExecutionOutcome:
    """Normalized result of one provider attempt.

    Non-zero exit codes are execution outcomes, not provider failures.
    """

    provider: str
    stdout: str = ""
    stderr: str = ""
    exit_code: int = 0
    execution_time_ms: int = 0
    timed_out: bool = False
    cancelled: bool = False
    truncated: bool = False

    @property
    def success(self) -> bool:
        return self.exit_code == 0 and not self.timed_out and not self.cancelled

    def to_data(self) -> dict[str, object]:
        return {
            "stdout": self.stdout,
            "stderr": self.stderr,
            "exitCode": self.exit_code,
            "executionTimeMs": self.execution_time_ms,
            "success": self.success,
            "provider": self.provider,
            "truncated": self.truncated,
        }


def truncate_output(text: str, limit: int) -> tuple[str, bool]:
    """Clip *text* to *limit* UTF-8 bytes."""
    raw = text.encode("utf-8", errors="replace")
    if len(raw) <= limit:
        return text, False
    return raw[:limit].decode("utf-8", errors="ignore"), True


# --- Provider descriptors ---


@dataclass(frozen=True)
class ProviderDescriptor:
    """Configured identity and capabilities of one execution provider.

    Loaded once at startup and read-only thereafter.
    """

    name: str
    priority: int
    supported_languages: frozenset[str] = field(default_factory=frozenset)
    default_timeout_seconds: float = 30.0

    def supports(self, language: str) -> bool:
        return language in self.supported_languages
