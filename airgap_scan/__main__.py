from airgap_scan.cli import app

if __name__ == "__main__":
    app()
