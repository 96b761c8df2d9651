from prom_config_watcher.cli import app

if __name__ == "__main__":
    app(prog_name="prom-config-watcher")
