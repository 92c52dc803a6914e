from tiffinhub import create_app
from tiffinhub.extensions import db
from tiffinhub.models import *  # noqa

app = create_app()


@app.shell_context_processor
def shell_context():
    return {'db': db}


if __name__ == '__main__':
    app.run(port=int(app.config.get('PORT', 3001)))
