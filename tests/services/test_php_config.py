import os

import pytest

import suitecrmbootstrap.services.php_config as php_config_module
from suitecrmbootstrap.errors import ConfigFileError
from suitecrmbootstrap.models import DatabaseEndpoint, Settings
from suitecrmbootstrap.services.php_config import (
    PhpConfigFile,
    build_db_seed_config,
    build_silent_install_config,
    dump_php_config,
    parse_php_config,
)

# var_export leaves a space after "=>" when a nested array follows on the next line.
SUITECRM_CONFIG = """<?php
$sugar_config = array (
  'addAjaxBannedModules' =>
  array (
  ),
  'admin_access_control' => false,
  'cache_dir' => 'cache/',
  'dbconfig' =>
  array (
    'db_host_name' => 'mariadb',
    'db_host_instance' => 'SQLEXPRESS',
    'db_user_name' => 'bn_suitecrm',
    'db_password' => 'it\\'s \\\\ secret',
    'db_name' => 'bitnami_suitecrm',
    'db_type' => 'mysql',
    'db_port' => '3306',
    'db_manager' => 'MysqliManager',
  ),
  'default_max_tabs' => 10,
  'upload_maxsize' => 30000000,
  'rss_cache_time' => 10800,
  'list_max_entries_per_page' => 20,
  'default_currency_significant_digits' => 2,
  'js_lang_version' => 1.5,
  'logger' =>
  array (
    'level' => 'fatal',
    'file' =>
    array (
      'ext' => '.log',
      'name' => 'suitecrm',
    ),
  ),
  'site_url' => 'http://localhost',
  'unique_key' => NULL,
  'verify_client_ip' => true,
);
""".replace(" =>\n", " => \n")


def test_parse_reads_nested_values_and_scalars():
    variables = parse_php_config(SUITECRM_CONFIG)
    config = variables["sugar_config"]

    assert config["addAjaxBannedModules"] == {}
    assert config["admin_access_control"] is False
    assert config["dbconfig"]["db_host_name"] == "mariadb"
    assert config["dbconfig"]["db_password"] == "it's \\ secret"
    assert config["default_max_tabs"] == 10
    assert config["js_lang_version"] == 1.5
    assert config["logger"]["file"]["name"] == "suitecrm"
    assert config["unique_key"] is None
    assert config["verify_client_ip"] is True


def test_dump_reproduces_suitecrm_layout():
    assert dump_php_config(parse_php_config(SUITECRM_CONFIG)) == SUITECRM_CONFIG


def test_parse_handles_short_arrays_lists_comments_and_double_quotes():
    text = """<?php
// generated
# by hand
/* block
   comment */
$sugar_config = [
    "greeting" => "line\\nbreak \\"quoted\\"",
    'modules' => ['Accounts', 'Contacts',],
    'mixed' => array(5 => 'five', 'six', '10' => 'ten', 'eleven'),
    'negative' => -3,
];
?>
"""
    config = parse_php_config(text)["sugar_config"]

    assert config["greeting"] == 'line\nbreak "quoted"'
    assert config["modules"] == {0: "Accounts", 1: "Contacts"}
    assert config["mixed"] == {5: "five", 6: "six", 10: "ten", 11: "eleven"}
    assert config["negative"] == -3


def test_parse_handles_indexed_assignments_from_override_file():
    text = """<?php
/***CONFIGURATOR***/
$sugar_config['disable_persistent_connections'] = false;
$sugar_config['default_module_favicon'] = false;
$sugar_config['dashlet_auto_refresh_min'] = '30';
$sugar_config['stack_trace_errors'] = false;
$sugar_config['developerMode'] = false;
$sugar_config['addAjaxBannedModules'][] = 'SecurityGroups';
$sugar_config['aod']['enable_aod'] = true;
/***CONFIGURATOR***/
"""
    config = parse_php_config(text)["sugar_config"]

    assert config["dashlet_auto_refresh_min"] == "30"
    assert config["addAjaxBannedModules"] == {0: "SecurityGroups"}
    assert config["aod"] == {"enable_aod": True}


@pytest.mark.parametrize(
    "text",
    [
        "$sugar_config = array();",
        "<?php $sugar_config = array( 'a' => 'b' ",
        "<?php $sugar_config = array( 'a' => SOME_CONSTANT );",
        "<?php $sugar_config = array( 'a' => 'b' ) ",
        "<?php $sugar_config = `ls`;",
    ],
)
def test_parse_rejects_malformed_input(text):
    with pytest.raises(ConfigFileError):
        parse_php_config(text)


def test_config_file_get_reads_nested_keys(tmp_path):
    path = tmp_path / "config.php"
    path.write_text(SUITECRM_CONFIG, encoding="utf-8")
    config_file = PhpConfigFile(str(path))

    assert config_file.get("dbconfig", "db_port") == "3306"
    assert config_file.get("logger", "file", "ext") == ".log"

    with pytest.raises(ConfigFileError, match=r"\['dbconfig'\]\['missing'\]"):
        config_file.get("dbconfig", "missing")


def test_config_file_set_replaces_existing_value_in_place(tmp_path):
    path = tmp_path / "config.php"
    path.write_text(SUITECRM_CONFIG, encoding="utf-8")
    config_file = PhpConfigFile(str(path))

    config_file.set(["site_url"], "https://crm.example.com")

    content = path.read_text(encoding="utf-8")
    assert "  'site_url' => 'https://crm.example.com',\n" in content
    assert content == SUITECRM_CONFIG.replace("http://localhost", "https://crm.example.com")


def test_config_file_set_adds_new_nested_keys(tmp_path):
    path = tmp_path / "config.php"
    path.write_text(SUITECRM_CONFIG, encoding="utf-8")
    config_file = PhpConfigFile(str(path))

    config_file.set(["search", "ElasticSearch", "enabled"], False)

    assert config_file.get("search", "ElasticSearch", "enabled") is False
    assert config_file.get("dbconfig", "db_name") == "bitnami_suitecrm"


def test_config_file_write_keeps_file_mode(tmp_path):
    path = tmp_path / "config.php"
    path.write_text(SUITECRM_CONFIG, encoding="utf-8")
    os.chmod(path, 0o640)

    PhpConfigFile(str(path)).set(["cache_dir"], "cache2/")

    assert os.stat(path).st_mode & 0o777 == 0o640
    assert [name for name in os.listdir(tmp_path)] == ["config.php"]


def test_config_file_set_creates_missing_file(tmp_path):
    path = tmp_path / "config.php"
    config_file = PhpConfigFile(str(path))

    config_file.set(["dbconfig", "db_host_name"], "db")

    assert path.read_text(encoding="utf-8") == (
        "<?php\n"
        "$sugar_config = array (\n"
        "  'dbconfig' => \n"
        "  array (\n"
        "    'db_host_name' => 'db',\n"
        "  ),\n"
        ");\n"
    )


def test_build_db_seed_config_contains_connection_parameters():
    endpoint = DatabaseEndpoint(host="db", port="3307", name="crm", user="crm_user", password="pw")

    dbconfig = build_db_seed_config(endpoint)["sugar_config"]["dbconfig"]

    assert dbconfig["db_host_name"] == "db"
    assert dbconfig["db_port"] == "3307"
    assert dbconfig["db_name"] == "crm"
    assert dbconfig["db_user_name"] == "crm_user"
    assert dbconfig["db_password"] == "pw"
    assert dbconfig["db_type"] == "mysql"


def test_build_silent_install_config_uses_protocol_and_credentials():
    settings = Settings(
        host="crm.example.com",
        enable_https="yes",
        username="admin",
        password="adminpw",
        database_password="dbpw",
        validate_user_ip="false",
    )

    config = build_silent_install_config(settings)["sugar_config_si"]

    assert config["setup_site_url"] == "https://crm.example.com"
    assert config["setup_site_admin_user_name"] == "admin"
    assert config["setup_site_admin_password"] == "adminpw"
    assert config["setup_db_admin_password"] == "dbpw"
    assert config["verify_client_ip"] is False
    assert "$sugar_config_si = array (" in dump_php_config({"sugar_config_si": config})


def test_config_file_write_keeps_owner_when_root(tmp_path, monkeypatch):
    path = tmp_path / "config.php"
    path.write_text(SUITECRM_CONFIG, encoding="utf-8")
    current = os.stat(path)
    chowned = []
    monkeypatch.setattr(php_config_module, "am_i_root", lambda: True)
    monkeypatch.setattr(php_config_module.os, "chown", lambda *args: chowned.append(args))

    PhpConfigFile(str(path)).set(["verify_client_ip"], False)

    assert len(chowned) == 1
    temp_path, uid, gid = chowned[0]
    assert os.path.dirname(temp_path) == os.path.realpath(tmp_path)
    assert (uid, gid) == (current.st_uid, current.st_gid)


def test_config_file_write_skips_chown_when_not_root(tmp_path, monkeypatch):
    path = tmp_path / "config.php"
    path.write_text(SUITECRM_CONFIG, encoding="utf-8")
    monkeypatch.setattr(php_config_module, "am_i_root", lambda: False)
    monkeypatch.setattr(
        php_config_module.os, "chown", lambda *args: pytest.fail("chown must not run")
    )

    PhpConfigFile(str(path)).set(["verify_client_ip"], False)


@pytest.mark.skipif(
    not hasattr(os, "geteuid") or os.geteuid() != 0, reason="changing owners needs root"
)
def test_config_file_set_keeps_daemon_ownership(tmp_path):
    path = tmp_path / "config.php"
    path.write_text(SUITECRM_CONFIG, encoding="utf-8")
    os.chown(path, 1, 0)

    PhpConfigFile(str(path)).set(["verify_client_ip"], False)

    assert (os.stat(path).st_uid, os.stat(path).st_gid) == (1, 0)


def test_config_file_write_through_symlink_updates_target(tmp_path):
    volume = tmp_path / "volume"
    volume.mkdir()
    target = volume / "config.php"
    target.write_text(SUITECRM_CONFIG, encoding="utf-8")
    link = tmp_path / "config.php"
    os.symlink(target, link)

    PhpConfigFile(str(link)).set(["cache_dir"], "cache2/")

    assert link.is_symlink()
    assert PhpConfigFile(str(target)).get("cache_dir") == "cache2/"
