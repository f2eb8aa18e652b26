import os, json, copy

DATA_DIR_ENV = "COPYPASTA_DATA_DIR"
CONFIG_NAME = "config.json"

DEFAULT_CONFIG = {

    "database": {
        "path": "copypasta.db"           # 相対パスはデータディレクトリ基準
    },
    "upload": {
        "max_size_mb": 50
    },
    "expiry": {
        "days": 14,
        "sweep_interval_minutes": 60
    },
    "ordering": {
        "list_by": "order",              # "order" or "created"
        "insert_at": "top"               # "top" or "bottom"
    },
    "logging": {
        "level": "INFO"
    },
}


def get_data_dir():

    data_dir = os.getenv(DATA_DIR_ENV, "").strip()
    if not data_dir:
        raise RuntimeError(f"{DATA_DIR_ENV} environment variable not set")

    return os.path.abspath(data_dir)


def load_config(data_dir=None):
    """
    データディレクトリ直下の config.json を読み込む
    無ければデフォルト値で作成し、足りないセクションはデフォルトで補完する
    """

    data_dir = os.path.abspath(data_dir) if data_dir else get_data_dir()
    os.makedirs(data_dir, exist_ok=True)

    config_path = os.path.join(data_dir, CONFIG_NAME)

    if not os.path.exists(config_path):

        with open(config_path, "w") as f:
            json.dump(DEFAULT_CONFIG, f, indent=2)

        config = copy.deepcopy(DEFAULT_CONFIG)

    else:

        with open(config_path) as f:

            try:
                config = json.load(f)
            except json.JSONDecodeError:
                config = copy.deepcopy(DEFAULT_CONFIG)

        for k, v in DEFAULT_CONFIG.items():
            section = config.setdefault(k, copy.deepcopy(v))
            if isinstance(v, dict) and isinstance(section, dict):
                for sk, sv in v.items():
                    section.setdefault(sk, sv)

    config["data_dir"] = data_dir

    db_path = config["database"]["path"]
    if not os.path.isabs(db_path):
        config["database"]["path"] = os.path.join(data_dir, db_path)

    return config
