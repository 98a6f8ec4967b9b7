from data_refinery.cli import app

if __name__ == "__main__":
    app()
