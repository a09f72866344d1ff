import io
import os

import pytest
import yaml

from duffle.credentials import (
    CredentialError,
    CredentialListItem,
    CredentialSet,
    CredentialStrategy,
    Source,
    add_credential_set,
    add_credential_sets,
    copy_credential_set_file,
    file_exists,
    file_name_matches_set_name,
    find_credential_set,
    find_credential_sets,
    find_creds,
    format_credentials,
    gen_credential_set,
    gen_empty_credentials,
    list_credential_sets,
    load_credential_set,
    load_credentials,
    remove_credential_sets,
)


def _write_set(path, name, creds=None):
    data = {
        "name": name,
        "credentials": creds
        if creds is not None
        else [{"name": "kubeconfig", "source": {"path": "/tmp/kubeconfig"}}],
    }
    path.write_text(yaml.safe_dump(data))
    return str(path)


@pytest.fixture
def source_home(tmp_path):
    creds = tmp_path / "src" / "credentials"
    creds.mkdir(parents=True)
    for name in ("testing", "example", "another"):
        _write_set(creds / f"{name}.yaml", name)
    return creds


@pytest.fixture
def malformed_home(tmp_path):
    creds = tmp_path / "malformed" / "credentials"
    creds.mkdir(parents=True)
    _write_set(creds / "example.yaml", "example")
    (creds / "malformed.yaml").write_text("- just\n- a list\n")
    _write_set(creds / "invalid.yaml", "notinvalid")
    return creds


@pytest.fixture
def dest_dir(tmp_path):
    dest = tmp_path / "home" / "credentials"
    dest.mkdir(parents=True)
    return dest


def test_add_file(source_home, dest_dir):
    add_credential_sets([str(source_home / "testing.yaml")], str(dest_dir))
    assert (dest_dir / "testing.yaml").exists()


def test_add_multiple_files(source_home, dest_dir):
    add_credential_sets(
        [str(source_home / "testing.yaml"), str(source_home / "example.yaml")], str(dest_dir)
    )
    assert (dest_dir / "testing.yaml").exists()
    assert (dest_dir / "example.yaml").exists()


def test_add_malformed_file(malformed_home, dest_dir):
    path = str(malformed_home / "malformed.yaml")
    with pytest.raises(CredentialError) as info:
        add_credential_sets([path], str(dest_dir))
    assert str(info.value) == f"{path} is not a valid credential set"
    assert not (dest_dir / "malformed.yaml").exists()


def test_add_invalid_file_name(malformed_home, dest_dir):
    with pytest.raises(CredentialError, match="does not match"):
        add_credential_sets([str(malformed_home / "invalid.yaml")], str(dest_dir))


def test_add_duplicate(source_home, dest_dir):
    (dest_dir / "testing.yaml").write_text("")
    with pytest.raises(CredentialError, match="already exists"):
        add_credential_sets([str(source_home / "testing.yaml")], str(dest_dir))


def test_add_missing_and_directory(tmp_path, dest_dir):
    missing = str(tmp_path / "nope.yaml")
    with pytest.raises(CredentialError) as info:
        add_credential_sets([missing, str(tmp_path)], str(dest_dir))
    lines = str(info.value).split("\n")
    assert lines[0] == f"File ({missing}) does not exist"
    assert lines[1] == f"{tmp_path} is a directory. Enter path to a credential set file"


def test_add_credential_set_single(source_home, dest_dir):
    dest = str(dest_dir / "example.yaml")
    add_credential_set(dest, str(source_home / "example.yaml"))
    assert load_credential_set(dest).name == "example"


def test_file_name_without_extension():
    with pytest.raises(CredentialError, match="does not have valid"):
        file_name_matches_set_name("/some/dir/testing", "testing")


def test_file_name_with_dots_matches():
    file_name_matches_set_name("/a/my.set.yaml", "my.set")
    with pytest.raises(CredentialError):
        file_name_matches_set_name("/a/my.set.yaml", "my")


def test_list(source_home):
    out = io.StringIO()
    list_credential_sets(str(source_home), out)
    result = out.getvalue()
    assert result.startswith("NAME")
    for name in ("testing", "example", "another"):
        assert name in result


def test_list_empty(tmp_path):
    creds = tmp_path / "credentials"
    creds.mkdir()
    out = io.StringIO()
    list_credential_sets(str(creds), out, short=True)
    assert out.getvalue() == ""


def test_list_errors(malformed_home):
    (malformed_home / "invalid.yaml").unlink()
    out = io.StringIO()
    list_credential_sets(str(malformed_home), out, short=True)
    assert out.getvalue() == "example\n"


def test_find_credential_sets_sorted(source_home):
    items = find_credential_sets(str(source_home))
    assert [i.name for i in items] == ["another", "example", "testing"]
    assert items[0] == CredentialListItem("another", str(source_home / "another.yaml"))


def test_find_credential_sets_missing_dir(tmp_path):
    assert find_credential_sets(str(tmp_path / "absent")) == []


def test_remove(source_home, dest_dir):
    for name in ("testing", "example", "another"):
        copy_credential_set_file(str(dest_dir / f"{name}.yaml"), str(source_home / f"{name}.yaml"))
    out = io.StringIO()
    remove_credential_sets(["testing", "example"], str(dest_dir), out)
    assert not (dest_dir / "testing.yaml").exists()
    assert not (dest_dir / "example.yaml").exists()
    assert (dest_dir / "another.yaml").exists()
    assert "Removed credential set: testing\n" in out.getvalue()

    remove_credential_sets(["another"], str(dest_dir), out)
    assert not (dest_dir / "another.yaml").exists()

    with pytest.raises(CredentialError, match="Unable to find credential set\\(s\\): another"):
        remove_credential_sets(["another"], str(dest_dir), out)


CREDENTIAL_SET = CredentialSet(
    name="foo",
    credentials=[
        CredentialStrategy("password", Source(value="secret")),
        CredentialStrategy("another-password"),
        CredentialStrategy("kubeconfig", Source(path="/root/.kube/config")),
        CredentialStrategy("some-setting", Source(env="MYSETTING")),
    ],
)


@pytest.mark.parametrize(
    "unredacted,expected",
    [
        (
            False,
            "name: foo\ncredentials:\n- name: password\n  source:\n    value: REDACTED\n"
            "- name: another-password\n  source: {}\n- name: kubeconfig\n  source:\n"
            "    path: /root/.kube/config\n- name: some-setting\n  source:\n    env: MYSETTING\n",
        ),
        (
            True,
            "name: foo\ncredentials:\n- name: password\n  source:\n    value: secret\n"
            "- name: another-password\n  source: {}\n- name: kubeconfig\n  source:\n"
            "    path: /root/.kube/config\n- name: some-setting\n  source:\n    env: MYSETTING\n",
        ),
    ],
)
def test_format_credentials(unredacted, expected):
    assert format_credentials(CREDENTIAL_SET, unredacted) == expected
    assert CREDENTIAL_SET.credentials[0].source.value == "secret"


def test_gen_credential_set():
    creds = gen_credential_set("zed", {"third": 3, "first": 1, "second": 2}, gen_empty_credentials)
    assert creds.name == "zed"
    assert [c.name for c in creds.credentials] == ["first", "second", "third"]
    assert all(c.source.value == "EMPTY" for c in creds.credentials)


@pytest.mark.parametrize("name", ["period.", "forwardslash/", "backslash\\", "all.of.the/above\\"])
def test_gen_credential_set_bad_name(name):
    with pytest.raises(CredentialError):
        gen_credential_set(name, None, gen_empty_credentials)


def test_yaml_round_trip(tmp_path):
    path = tmp_path / "foo.yaml"
    path.write_text(CREDENTIAL_SET.to_yaml())
    assert load_credential_set(str(path)) == CREDENTIAL_SET
    assert find_credential_set(str(tmp_path), "foo") == CREDENTIAL_SET


def test_load_credentials(tmp_path):
    sets = [
        CredentialSet("first", [
            CredentialStrategy("knapsack", Source(value="cred1")),
            CredentialStrategy("gym-bag", Source(value="cred1")),
        ]),
        CredentialSet("second", [
            CredentialStrategy("knapsack", Source(value="cred2")),
            CredentialStrategy("haversack", Source(value="cred2")),
        ]),
        CredentialSet("third", [CredentialStrategy("haversack", Source(value="cred3"))]),
    ]
    files = []
    for cs in sets:
        path = tmp_path / f"{cs.name}.yaml"
        path.write_text(cs.to_yaml())
        files.append(str(path))
    creds = load_credentials(files, str(tmp_path))
    assert creds == {"knapsack": "cred2", "haversack": "cred3", "gym-bag": "cred1"}


def test_load_credentials_by_name(tmp_path):
    (tmp_path / "named.yaml").write_text(
        CredentialSet("named", [CredentialStrategy("a", Source(value="x"))]).to_yaml()
    )
    assert load_credentials(["named"], str(tmp_path)) == {"a": "x"}


def test_find_creds(tmp_path, source_home):
    (tmp_path / "creds1.yaml").write_text("test")
    assert find_creds(str(tmp_path), "creds1") == str(tmp_path / "creds1.yaml")
    (tmp_path / "creds2.yml").write_text("test")
    assert find_creds(str(tmp_path), "creds2") == str(tmp_path / "creds2.yml")
    given = str(source_home / "testing.yaml")
    assert find_creds(str(tmp_path), given) == given


def test_file_exists(tmp_path):
    (tmp_path / "here").write_text("x")
    assert file_exists(str(tmp_path / "here")) is True
    assert file_exists(str(tmp_path / "gone")) is False


def test_resolve_precedence(tmp_path, monkeypatch):
    secret_file = tmp_path / "value.txt"
    secret_file.write_text("from-file")
    monkeypatch.setenv("DUFFLE_TEST_CRED", "from-env")
    monkeypatch.delenv("DUFFLE_TEST_UNSET", raising=False)
    cs = CredentialSet("r", [
        CredentialStrategy("cmd", Source(command="echo hi", path=str(secret_file))),
        CredentialStrategy("file", Source(path=str(secret_file), env="DUFFLE_TEST_CRED")),
        CredentialStrategy("env", Source(env="DUFFLE_TEST_CRED", value="literal")),
        CredentialStrategy("fallback", Source(env="DUFFLE_TEST_UNSET", value="literal")),
    ])
    assert cs.resolve() == {
        "cmd": "hi\n",
        "file": "from-file",
        "env": "from-env",
        "fallback": "literal",
    }


def test_resolve_missing_path(tmp_path):
    strategy = CredentialStrategy("gone", Source(path=str(tmp_path / "absent")))
    with pytest.raises(CredentialError, match="gone"):
        strategy.resolve()


def test_copy_credential_set_file_mode(tmp_path, source_home):
    dest = tmp_path / "copy.yaml"
    copy_credential_set_file(str(dest), str(source_home / "example.yaml"))
    assert dest.read_text() == (source_home / "example.yaml").read_text()
    if os.name == "posix":
        assert dest.stat().st_mode & 0o777 == 0o600
    else:
        assert dest.stat().st_size > 0


def test_source_to_dict_omits_empty():
    assert Source(env="E", value="v").to_dict() == {"env": "E", "value": "v"}
    assert CredentialStrategy("n").to_dict() == {"name": "n", "source": {}}