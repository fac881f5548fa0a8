"""
Entry point for Flask.

Usage (from project root):

    flask --app run.py seed-catalog
    flask --app run.py create-admin admin@example.com "Store Admin"
    flask --app run.py --debug run

    # after changing metal/gemstone rates
    flask --app run.py recalculate-prices            # dry run
    flask --app run.py recalculate-prices --apply
"""

from jewelstore import create_app

# WSGI application object (`flask run` and WSGI servers look for `app`)
app = create_app()

if __name__ == "__main__":
    # Dev only; use a WSGI server in production
    app.run(debug=True)
