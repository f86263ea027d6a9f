"""Artifact loading: local source files with optional YAML front matter."""

import hashlib
import logging
from abc import ABC, abstractmethod
from pathlib import Path

import frontmatter

from vulnswarm.models import Artifact

logger = logging.getLogger(__name__)

SOURCE_SUFFIXES = (".sol", ".vy", ".rs", ".move", ".cairo", ".md")


class ArtifactSource(ABC):
    """Anything that can turn a target reference into an Artifact."""

    @abstractmethod
    async def fetch(self, target: str) -> Artifact:
        ...


def expand_targets(paths: list[Path]) -> list[Path]:
    """Replace directories with the source files inside them, sorted by name."""
    expanded: list[Path] = []
    for path in paths:
        if path.is_dir():
            expanded.extend(sorted(p for p in path.rglob("*") if p.suffix in SOURCE_SUFFIXES))
        else:
            expanded.append(path)
    return expanded


class FileArtifactSource(ArtifactSource):
    """Reads a local file. Front matter keys name, chain, address and id are recognised;
    any other keys are kept as metadata.

    ---
    name: Vault
    chain: ethereum
    address: "0xabc..."
    ---
    contract Vault { ... }
    """

    async def fetch(self, target: str) -> Artifact:
        path = Path(target)
        if not path.is_file():
            raise FileNotFoundError(f"Artifact file not found: {path}")

        post = frontmatter.load(str(path))
        metadata = dict(post.metadata)
        content = post.content.strip()
        if not content:
            raise ValueError(f"Artifact file is empty: {path}")

        digest = hashlib.sha1(f"{path.resolve()}\n{content}".encode("utf-8")).hexdigest()[:12]
        return Artifact(
            id=str(metadata.pop("id", f"artifact_{digest}")),
            name=str(metadata.pop("name", path.stem)),
            content=content,
            chain=str(metadata.pop("chain", "unknown")),
            location=str(metadata.pop("address", path)),
            metadata=metadata,
        )


async def collect_artifacts(source: ArtifactSource, targets: list[str]) -> list[Artifact]:
    """Fetch every target, skipping (and logging) the ones that fail."""
    artifacts: list[Artifact] = []
    for target in targets:
        try:
            artifacts.append(await source.fetch(target))
        except Exception as exc:
            logger.error("Failed to load %s: %s", target, exc)
    logger.info("Loaded %d of %d artifact(s)", len(artifacts), len(targets))
    return artifacts
