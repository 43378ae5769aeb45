from ftp_s3_gateway.cli import app

app()
