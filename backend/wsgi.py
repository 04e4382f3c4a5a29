from quotemaster import create_app

app = create_app()
