"""
Catalog parser.

Normalizes the ``/configs`` directory extracted from an operator index image
into canonical ``OperatorEntry`` records. Each sub-directory of ``configs`` is
one operator package, laid out in one of several shapes:

* ``catalog.json`` / ``index.json`` – a stream of concatenated JSON documents
  (``olm.package``, ``olm.channel``, ``olm.bundle``); extra channels may live in
  sibling ``*.json`` files
* ``index.yaml`` / ``catalog.yaml`` / ``catalog.yml`` – the same documents as
  multi-document YAML, or loosely structured text when YAML does not load
* ``package.json`` + ``channels.json`` – split package and channel documents
* ``package.json`` + ``channels/`` – one ``channel-<name>.json`` per channel
* ``package.json`` alone

A malformed operator directory never aborts the batch: it is logged, recorded
in ``ParseResult.errors`` and skipped.
"""
import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import yaml

from .errors import ParseError
from .models import OperatorEntry

logger = logging.getLogger(__name__)

PACKAGE_SCHEMA = "olm.package"
CHANNEL_SCHEMA = "olm.channel"

JSON_STREAM_FILES = ("catalog.json", "index.json")
INDEX_YAML = "index.yaml"
CATALOG_YAML_FILES = ("catalog.yaml", "catalog.yml")
IGNORED_CHANNEL_FILES = {"released-bundles.json", "package.json", "channels.json"}

_CHANNEL_FILE_RE = re.compile(r"^channel-(?P<name>.+)\.json$")
_TEXT_NAME_RE = re.compile(r"^\s*(?:-\s*)?name:\s*[\"']?(?P<value>[^\"'#\s]+)")
_TEXT_DEFAULT_RE = re.compile(r"^\s*defaultChannel:\s*[\"']?(?P<value>[^\"'#\s]+)")
_TEXT_PACKAGE_RE = re.compile(r"^\s*package:")


@dataclass
class ParseResult:
    """Operators parsed from one configs directory plus per-operator failures."""
    entries: List[OperatorEntry] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)


def version_sort_key(value: str) -> List[Any]:
    """Natural sort key: ``stable-4.9`` sorts before ``stable-4.10``."""
    return [int(part) if part.isdigit() else part for part in re.split(r"(\d+)", value)]


def sorted_channels(names: Iterable[Optional[str]]) -> List[str]:
    """De-duplicate and version-sort channel names, dropping blanks."""
    unique = {name.strip() for name in names if isinstance(name, str) and name.strip()}
    return sorted(unique, key=version_sort_key)


def load_json_documents(text: str, source: str = "<string>") -> List[Dict[str, Any]]:
    """Decode a stream of concatenated JSON documents.

    Handles the file-based catalog format where objects are written back to
    back without an enclosing array. A top-level array is flattened.
    """
    decoder = json.JSONDecoder()
    documents: List[Dict[str, Any]] = []
    index = 0
    length = len(text)
    while True:
        while index < length and text[index].isspace():
            index += 1
        if index >= length:
            break
        try:
            obj, index = decoder.raw_decode(text, index)
        except json.JSONDecodeError as exc:
            raise ParseError(f"Invalid JSON in {source}: {exc}") from exc
        if isinstance(obj, list):
            documents.extend(doc for doc in obj if isinstance(doc, dict))
        elif isinstance(obj, dict):
            documents.append(obj)
    return documents


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        raise ParseError(f"Cannot read {path}: {exc}") from exc


def _find_package(documents: Iterable[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    for doc in documents:
        if doc.get("schema") == PACKAGE_SCHEMA:
            return doc
    return None


def _channel_names(documents: Iterable[Dict[str, Any]]) -> List[str]:
    return [doc.get("name") for doc in documents if doc.get("schema") == CHANNEL_SCHEMA]


def _build_entry(name: Any, default_channel: Any, channels: Iterable[Optional[str]], source: str) -> OperatorEntry:
    if not isinstance(name, str) or not name.strip():
        raise ParseError(f"No operator name found in {source}")
    default = default_channel.strip() if isinstance(default_channel, str) and default_channel.strip() else None
    names = sorted_channels(channels)
    if not names and default:
        names = [default]
    return OperatorEntry(name=name.strip(), default_channel=default, channels=names)


class CatalogParser:
    """Stateless parser for extracted operator catalogs."""

    def parse_configs_dir(
        self,
        configs_dir: Path,
        catalog_type: Optional[str] = None,
        ocp_version: Optional[str] = None,
        catalog_url: Optional[str] = None,
    ) -> ParseResult:
        """Parse every operator directory below *configs_dir*.

        Raises:
            ParseError: if *configs_dir* itself does not exist
        """
        configs_dir = Path(configs_dir)
        if not configs_dir.is_dir():
            raise ParseError(f"No configs directory found at {configs_dir}")

        result = ParseResult()
        for operator_dir in sorted(p for p in configs_dir.iterdir() if p.is_dir()):
            try:
                entry = self.parse_operator_dir(operator_dir)
            except ParseError as exc:
                logger.warning(f"Skipping operator directory {operator_dir.name}: {exc}")
                result.errors[operator_dir.name] = str(exc)
                continue
            result.entries.append(entry.model_copy(update={
                "catalog": catalog_type,
                "ocp_version": ocp_version,
                "catalog_url": catalog_url,
            }))
            logger.debug(
                f"Extracted operator {entry.name} (default: {entry.default_channel}, channels: {entry.channels})"
            )
        return result

    def parse_operator_dir(self, operator_dir: Path) -> OperatorEntry:
        """Parse one operator package directory into an ``OperatorEntry``."""
        operator_dir = Path(operator_dir)
        package_json = operator_dir / "package.json"

        for filename in JSON_STREAM_FILES:
            candidate = operator_dir / filename
            if candidate.is_file():
                return self._parse_json_stream(candidate)

        index_yaml = operator_dir / INDEX_YAML
        if index_yaml.is_file():
            return self._parse_yaml(index_yaml)

        if package_json.is_file() and (operator_dir / "channels.json").is_file():
            return self._parse_split_files(package_json, operator_dir / "channels.json")

        for filename in CATALOG_YAML_FILES:
            candidate = operator_dir / filename
            if candidate.is_file():
                return self._parse_yaml(candidate)

        if package_json.is_file() and (operator_dir / "channels").is_dir():
            return self._parse_channel_directory(package_json, operator_dir / "channels")

        if package_json.is_file():
            package = self._load_package_json(package_json)
            return _build_entry(package.get("name"), package.get("defaultChannel"), [], str(package_json))

        raise ParseError(f"No supported catalog files found in {operator_dir}")

    # ------------------------------------------------------------------
    # Layouts
    # ------------------------------------------------------------------

    def _parse_json_stream(self, path: Path) -> OperatorEntry:
        documents = load_json_documents(_read_text(path), str(path))
        package = _find_package(documents)
        if package is None:
            raise ParseError(f"No {PACKAGE_SCHEMA} document in {path}")

        channels = _channel_names(documents)
        channels.extend(self._sibling_channel_names(path))
        return _build_entry(package.get("name"), package.get("defaultChannel"), channels, str(path))

    def _sibling_channel_names(self, main_file: Path) -> List[str]:
        """Channel names from per-channel JSON files next to the main catalog file."""
        names: List[str] = []
        for channel_file in sorted(main_file.parent.glob("*.json")):
            if channel_file == main_file or channel_file.name in IGNORED_CHANNEL_FILES:
                continue
            if channel_file.name in JSON_STREAM_FILES:
                continue
            try:
                names.extend(_channel_names(load_json_documents(_read_text(channel_file), str(channel_file))))
            except ParseError as exc:
                logger.warning(f"Ignoring unreadable channel file {channel_file}: {exc}")
        return names

    def _parse_yaml(self, path: Path) -> OperatorEntry:
        text = _read_text(path)
        try:
            documents = [doc for doc in yaml.safe_load_all(text) if isinstance(doc, dict)]
        except yaml.YAMLError as exc:
            logger.debug(f"{path} is not valid YAML ({exc}); falling back to text scan")
            return self._scan_text(text, str(path))

        package = _find_package(documents)
        if package is not None:
            return _build_entry(package.get("name"), package.get("defaultChannel"),
                                _channel_names(documents), str(path))

        # Legacy package manifest: packageName + channels list
        for doc in documents:
            if "packageName" in doc or ("name" in doc and "defaultChannel" in doc):
                channels = [c.get("name") for c in doc.get("channels") or [] if isinstance(c, dict)]
                return _build_entry(doc.get("packageName") or doc.get("name"),
                                    doc.get("defaultChannel"), channels, str(path))

        return self._scan_text(text, str(path))

    def _scan_text(self, text: str, source: str) -> OperatorEntry:
        """Line scan for loosely structured layouts that no structured loader accepts."""
        name: Optional[str] = None
        default_channel: Optional[str] = None
        channels: List[str] = []
        in_channel_doc = False
        for line in text.splitlines():
            stripped = line.strip()
            if stripped.startswith("---"):
                in_channel_doc = False
                continue
            if stripped.startswith("schema:"):
                in_channel_doc = CHANNEL_SCHEMA in stripped
                continue
            if _TEXT_PACKAGE_RE.match(line):
                continue
            default_match = _TEXT_DEFAULT_RE.match(line)
            if default_match and default_channel is None:
                default_channel = default_match.group("value")
                continue
            name_match = _TEXT_NAME_RE.match(line)
            if name_match and not line.startswith((" ", "\t", "-")):
                if in_channel_doc:
                    channels.append(name_match.group("value"))
                elif name is None:
                    name = name_match.group("value")
        return _build_entry(name, default_channel, channels, source)

    def _load_package_json(self, package_json: Path) -> Dict[str, Any]:
        documents = load_json_documents(_read_text(package_json), str(package_json))
        package = _find_package(documents) or (documents[0] if documents else None)
        if package is None:
            raise ParseError(f"Empty package file {package_json}")
        return package

    def _parse_split_files(self, package_json: Path, channels_json: Path) -> OperatorEntry:
        package = self._load_package_json(package_json)
        documents = load_json_documents(_read_text(channels_json), str(channels_json))
        channels = [doc.get("name") for doc in documents if doc.get("schema", CHANNEL_SCHEMA) == CHANNEL_SCHEMA]
        return _build_entry(package.get("name"), package.get("defaultChannel"), channels, str(package_json))

    def _parse_channel_directory(self, package_json: Path, channels_dir: Path) -> OperatorEntry:
        package = self._load_package_json(package_json)
        channels: List[str] = []
        for channel_file in sorted(channels_dir.glob("*.json")):
            match = _CHANNEL_FILE_RE.match(channel_file.name)
            if match:
                channels.append(match.group("name"))
            try:
                channels.extend(_channel_names(load_json_documents(_read_text(channel_file), str(channel_file))))
            except ParseError as exc:
                logger.warning(f"Ignoring unreadable channel file {channel_file}: {exc}")
        return _build_entry(package.get("name"), package.get("defaultChannel"), channels, str(package_json))
