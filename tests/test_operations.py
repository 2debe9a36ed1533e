#!/usr/bin/env python3
"""
Tests for ResourceManager.

Tests verify:
1. Adding and removing languages, with default-language protection
2. Adding, updating and deleting keys across every language
3. Every modified file is backed up first; disabled backups take none
4. Resource set selection and scaffolding
5. A failed snapshot stops the operation before any file changes
"""

import json

import pytest

from lrm.backup import BACKUP_DIR
from lrm.config import BackupConfig, JsonFormatConfig, LrmConfig
from lrm.exceptions import (
    AmbiguousResourceSetError,
    BackupWriteError,
    DefaultLanguageProtectedError,
    InvalidCultureCodeError,
    InvalidKeyError,
    KeyAlreadyExistsError,
    KeyNotFoundError,
    LanguageExistsError,
    LanguageNotFoundError,
    ResourceNotFoundError,
)
from lrm.operations import ResourceManager


def _write_json(path, data):
    path.write_text(json.dumps(data), encoding="utf-8")


def _read_json(path):
    return json.loads(path.read_text(encoding="utf-8"))


@pytest.fixture
def project(tmp_path):
    _write_json(tmp_path / "strings.json", {"Hello": "Hello", "Bye": {"_value": "Bye", "_comment": "Footer"}})
    _write_json(tmp_path / "strings.fr.json", {"Hello": "Bonjour", "Bye": "Au revoir"})
    return tmp_path


def _backups(manager, path):
    return manager.backups.list_backups(path, manager.root)


def test_format_detected(project):
    """Test that the format comes from the directory when not configured."""
    assert ResourceManager(project).format_name == "json"


def test_add_language(project):
    """Test that a new language gets every key with empty values."""
    manager = ResourceManager(project)
    language = manager.add_language("de")

    assert language.file_path == project / "strings.de.json"
    assert _read_json(language.file_path) == {"Hello": "", "Bye": {"_value": "", "_comment": "Footer"}}
    assert [l.code for l in manager.list_languages()] == ["", "de", "fr"]


def test_add_language_copy_values(project):
    """Test copy_values."""
    language = ResourceManager(project).add_language("it-IT", copy_values=True)
    assert language.file_path.name == "strings.it-IT.json"
    assert _read_json(language.file_path)["Hello"] == "Hello"


def test_add_language_rejects_invalid_and_existing(project):
    """Test invalid codes and languages that already exist."""
    manager = ResourceManager(project)
    with pytest.raises(InvalidCultureCodeError):
        manager.add_language("not a code!")
    with pytest.raises(LanguageExistsError):
        manager.add_language("FR")


def test_remove_language_backs_up_first(project):
    """Test that the file is snapshotted, then deleted."""
    manager = ResourceManager(project)
    french = project / "strings.fr.json"
    content = french.read_bytes()

    manager.remove_language("fr")

    assert not french.exists()
    backups = _backups(manager, french)
    assert [(b.version, b.operation) for b in backups] == [(1, "remove-language")]
    snapshot = manager.backups.get_backup_file_path(french, 1, project)
    assert snapshot.read_bytes() == content


@pytest.mark.parametrize("code, config", [
    ("", LrmConfig()),
    ("en", LrmConfig(default_language_code="en")),
])
def test_default_language_is_protected(project, code, config):
    """Test that removing the default fails before anything is touched."""
    before = sorted(p.name for p in project.iterdir())
    manager = ResourceManager(project, config)

    with pytest.raises(DefaultLanguageProtectedError):
        manager.remove_language(code)

    assert sorted(p.name for p in project.iterdir()) == before
    assert not (project / BACKUP_DIR).exists()


def test_remove_unknown_language(project):
    """Test removing a language that has no file."""
    with pytest.raises(LanguageNotFoundError):
        ResourceManager(project).remove_language("ja")


def test_add_key(project):
    """Test adding a key with a comment and one translation."""
    manager = ResourceManager(project)
    written = manager.add_key("Welcome", "Welcome!", comment="Title", translations={"fr": "Bienvenue"})

    assert len(written) == 2
    assert _read_json(project / "strings.json")["Welcome"] == {"_value": "Welcome!", "_comment": "Title"}
    assert _read_json(project / "strings.fr.json")["Welcome"] == {"_value": "Bienvenue", "_comment": "Title"}
    for name in ("strings.json", "strings.fr.json"):
        assert [b.operation for b in _backups(manager, project / name)] == ["add-key"]


def test_add_key_untranslated_languages_get_empty_value(project):
    """Test that languages without a translation still get the key."""
    ResourceManager(project).add_key("New", "Value")
    assert _read_json(project / "strings.fr.json")["New"] == ""


def test_add_existing_key_changes_nothing(project):
    """Test that a duplicate key fails without writing or backing up."""
    manager = ResourceManager(project)
    before = (project / "strings.json").read_bytes()
    with pytest.raises(KeyAlreadyExistsError):
        manager.add_key("Hello", "Again")
    assert (project / "strings.json").read_bytes() == before
    assert not (project / BACKUP_DIR).exists()


def test_add_key_unknown_translation_language(project):
    """Test that a translation for a missing language is rejected."""
    with pytest.raises(LanguageNotFoundError):
        ResourceManager(project).add_key("New", "Value", translations={"ja": "x"})


def test_update_key_only_writes_changed_files(project):
    """Test that an unchanged translation file is neither backed up nor rewritten."""
    manager = ResourceManager(project)
    written = manager.update_key("Hello", value="Hi")

    assert [l.code for l in written] == [""]
    assert _read_json(project / "strings.json")["Hello"] == "Hi"
    assert len(_backups(manager, project / "strings.json")) == 1
    assert _backups(manager, project / "strings.fr.json") == []


def test_update_key_comment_and_translation(project):
    """Test changing a comment and a translation together."""
    manager = ResourceManager(project)
    manager.update_key("Bye", comment="Shown at the bottom", translations={"fr": "Salut"})

    assert _read_json(project / "strings.json")["Bye"] == {"_value": "Bye", "_comment": "Shown at the bottom"}
    assert _read_json(project / "strings.fr.json")["Bye"] == {"_value": "Salut", "_comment": "Shown at the bottom"}


def test_update_key_no_change(project):
    """Test that setting the current value writes nothing."""
    manager = ResourceManager(project)
    assert manager.update_key("Hello", value="Hello") == []
    assert not (project / BACKUP_DIR).exists()


def test_update_missing_key(project):
    """Test updating a key that does not exist."""
    with pytest.raises(KeyNotFoundError):
        ResourceManager(project).update_key("Missing", value="x")


def test_delete_key(project):
    """Test deleting a key from every language."""
    manager = ResourceManager(project)
    written = manager.delete_key("Bye")

    assert len(written) == 2
    assert "Bye" not in _read_json(project / "strings.json")
    assert "Bye" not in _read_json(project / "strings.fr.json")
    assert [b.operation for b in _backups(manager, project / "strings.fr.json")] == ["delete-key"]

    with pytest.raises(KeyNotFoundError):
        manager.delete_key("Bye")


def test_backup_flag_and_config(project):
    """Test that backup=False and backup.enabled=false both skip snapshots."""
    ResourceManager(project).add_key("A", "a", backup=False)
    ResourceManager(project, LrmConfig(backup=BackupConfig(enabled=False))).add_key("B", "b")
    assert not (project / BACKUP_DIR).exists()


def test_retention_follows_config(project):
    """Test that maxVersions caps the snapshots per file."""
    manager = ResourceManager(project, LrmConfig(backup=BackupConfig(max_versions=2)))
    for i in range(4):
        manager.update_key("Hello", value=f"v{i}")
    assert [b.version for b in _backups(manager, project / "strings.json")] == [4, 3]


def test_ambiguous_resource_set(project):
    """Test that several sets require a base name."""
    _write_json(project / "errors.json", {"E1": "Oops"})
    manager = ResourceManager(project)

    with pytest.raises(AmbiguousResourceSetError):
        manager.add_key("X", "x")
    manager.add_key("X", "x", base_name="errors")
    assert _read_json(project / "errors.json")["X"] == "x"

    with pytest.raises(ResourceNotFoundError):
        manager.add_key("X", "x", base_name="missing")


def test_empty_root(tmp_path):
    """Test operations on a root without resources."""
    with pytest.raises(ResourceNotFoundError):
        ResourceManager(tmp_path).add_key("A", "a")


def test_create_resource_set(tmp_path):
    """Test scaffolding a new set."""
    manager = ResourceManager(tmp_path, LrmConfig(resource_format="json"))
    created = manager.create_resource_set("app", ["fr", "de-de"])

    assert [l.file_path.name for l in created] == ["app.json", "app.fr.json", "app.de-DE.json"]
    assert _read_json(tmp_path / "app.json") == {}

    with pytest.raises(LanguageExistsError):
        manager.create_resource_set("app")


def test_operations_on_android_project(tmp_path):
    """Test the same operations through the Android layout."""
    values = tmp_path / "res" / "values"
    values.mkdir(parents=True)
    (values / "strings.xml").write_text(
        '<resources>\n    <string name="hello">Hello</string>\n</resources>\n', encoding="utf-8"
    )

    manager = ResourceManager(tmp_path)
    assert manager.format_name == "android"
    language = manager.add_language("pt-BR")
    assert language.file_path == tmp_path / "res" / "values-pt-rBR" / "strings.xml"

    manager.add_key("bye", "Goodbye", translations={"pt-BR": "Tchau"})
    assert manager.handler.read(language).get("bye").value == "Tchau"

    manager.remove_language("pt-BR")
    assert not (tmp_path / "res" / "values-pt-rBR").exists()


def test_add_language_skips_untranslatable_android_strings(tmp_path):
    """Test that strings marked translatable="false" stay in the default file only."""
    values = tmp_path / "res" / "values"
    values.mkdir(parents=True)
    (values / "strings.xml").write_text(
        '<resources>\n'
        '    <string name="app_name" translatable="false">Demo</string>\n'
        '    <string name="hello">Hello</string>\n'
        '</resources>\n',
        encoding="utf-8",
    )

    manager = ResourceManager(tmp_path)
    language = manager.add_language("fr", copy_values=True)

    content = language.file_path.read_text(encoding="utf-8")
    assert "app_name" not in content
    assert "translatable" not in content
    assert manager.handler.read(language).keys() == ["hello"]


@pytest.mark.parametrize("key, config", [
    ("_private", LrmConfig()),
    ("_private", LrmConfig(json=JsonFormatConfig(use_nested_keys=True))),
    ("menu._hidden", LrmConfig(json=JsonFormatConfig(use_nested_keys=True))),
])
def test_add_key_rejects_keys_json_cannot_store(project, key, config):
    """Test that keys read back as metadata are refused before anything is written."""
    before = {p.name: p.read_bytes() for p in project.iterdir()}
    with pytest.raises(InvalidKeyError):
        ResourceManager(project, config).add_key(key, "secret")
    assert {p.name: p.read_bytes() for p in project.iterdir()} == before
    assert not (project / BACKUP_DIR).exists()


def _fail_snapshots(monkeypatch):
    def failing_fsync(fd):
        raise OSError(28, "No space left on device")
    monkeypatch.setattr("lrm.backup.os.fsync", failing_fsync)


def test_remove_language_kept_when_backup_fails(project, monkeypatch):
    """Test that a language file survives when its snapshot cannot be written."""
    french = project / "strings.fr.json"
    content = french.read_bytes()
    _fail_snapshots(monkeypatch)

    with pytest.raises(BackupWriteError):
        ResourceManager(project).remove_language("fr")
    assert french.read_bytes() == content


def test_delete_key_writes_nothing_when_backup_fails(project, monkeypatch):
    """Test that no file is rewritten when a snapshot fails."""
    before = {name: (project / name).read_bytes() for name in ("strings.json", "strings.fr.json")}
    _fail_snapshots(monkeypatch)

    with pytest.raises(BackupWriteError):
        ResourceManager(project).delete_key("Bye")
    for name, content in before.items():
        assert (project / name).read_bytes() == content
