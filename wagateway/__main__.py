from wagateway.cli import app

app(prog_name="wagateway")
