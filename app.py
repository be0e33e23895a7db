from flask import Blueprint, Flask, current_app, jsonify, request
from flask_migrate import Migrate
from flask_login import LoginManager, UserMixin, login_user, logout_user, login_required
from datetime import date, datetime
import logging
import os
from dotenv import load_dotenv

from models import db
from ledger import LedgerStorageError, SQLLedgerStore
from billing import TransactionRecorder
from catalog import find_course, search_courses
from export import export_transactions
from queries import filter_records, monthly_revenue, revenue_by_month, sort_records, yearly_revenue

# Load environment variables
load_dotenv()

login_manager = LoginManager()
migrate = Migrate()
bp = Blueprint('pos', __name__)

# largest value the ledger's INTEGER amount column holds
MAX_AMOUNT = 2 ** 63 - 1


# Admin user for login; deleting transactions requires it
class User(UserMixin):
    id = 1

    @staticmethod
    def get(user_id):
        if user_id == 1:
            return User()
        return None


@login_manager.user_loader
def load_user(user_id):
    return User.get(int(user_id))


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify(success=False, error='Admin login required'), 401


def create_app(test_config=None):
    app = Flask(__name__, instance_relative_config=True)

    # Configure app
    app.config.update(
        SQLALCHEMY_DATABASE_URI=os.getenv('DATABASE_URL', 'sqlite:///transactions.db'),
        SQLALCHEMY_TRACK_MODIFICATIONS=False,
        SECRET_KEY=os.getenv('SECRET_KEY', 'default-secret-key'),
        ADMIN_USERNAME=os.getenv('ADMIN_USERNAME', 'admin'),
        ADMIN_PASSWORD=os.getenv('ADMIN_PASSWORD', 'admin'),
        EXPORT_DIR=os.getenv('EXPORT_DIR', os.path.join(app.instance_path, 'exports')),
        LOG_LEVEL=os.getenv('LOG_LEVEL', 'INFO'),
    )
    if test_config:
        app.config.update(test_config)

    logging.basicConfig(
        level=app.config['LOG_LEVEL'],
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    store = SQLLedgerStore(db)
    app.extensions['ledger'] = store
    app.extensions['recorder'] = TransactionRecorder(store)

    app.register_blueprint(bp)
    app.register_error_handler(LedgerStorageError, storage_error)
    return app


def storage_error(exc):
    current_app.logger.exception("Ledger storage failure")
    return jsonify(success=False, error=str(exc)), 500


def ledger():
    return current_app.extensions['ledger']


def recorder():
    return current_app.extensions['recorder']


def bad_request(message):
    return jsonify(success=False, error=message), 400


def parse_date(value, name):
    try:
        return datetime.strptime(value, '%Y-%m-%d').date()
    except (TypeError, ValueError):
        raise ValueError(f'Invalid {name}: expected YYYY-MM-DD')


def parse_amount(value):
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ValueError('Invalid amount provided')
    try:
        amount = int(value)
    except ValueError:
        raise ValueError('Invalid amount provided')
    if amount < 0:
        raise ValueError('Amount cannot be negative')
    if amount > MAX_AMOUNT:
        raise ValueError('Amount is too large')
    return amount


def json_body():
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError('Request body must be a JSON object')
    return data


def parse_text(data, key, message):
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(message)
    return value.strip()


def parse_student(data):
    return parse_text(data, 'studentName', 'Student name is required')


def parse_effective_date(data):
    value = data.get('effectiveDate')
    return parse_date(value, 'effectiveDate') if value else None


# Routes
@bp.route('/login', methods=['POST'])
def login():
    data = request.get_json(silent=True) or request.form
    username = data.get('username')
    password = data.get('password')
    if username == current_app.config['ADMIN_USERNAME'] and password == current_app.config['ADMIN_PASSWORD']:
        login_user(User())
        return jsonify(success=True)
    return jsonify(success=False, error='Invalid username or password'), 401


@bp.route('/logout', methods=['POST'])
@login_required
def logout():
    logout_user()
    return jsonify(success=True)


@bp.route('/api/courses')
def courses():
    return jsonify([course._asdict() for course in search_courses(request.args.get('q', '').strip())])


@bp.route('/api/transactions', methods=['POST'])
def save_transaction():
    try:
        data = json_body()
        student_name = parse_student(data)
        class_name = parse_text(data, 'className', 'Course is required')
        amount = parse_amount(data.get('amount'))
        effective_date = parse_effective_date(data)
    except ValueError as exc:
        return bad_request(str(exc))

    result = recorder().save_transaction(student_name, class_name, amount, effective_date)
    return jsonify(result.to_dict()), 201


@bp.route('/api/sales', methods=['POST'])
def record_sale():
    try:
        data = json_body()
        student_name = parse_student(data)
        items = data.get('items') or []
        if not items:
            raise ValueError('Please select at least one course')
        lines = []
        for item in items:
            if not isinstance(item, dict):
                raise ValueError('Invalid cart item')
            if item.get('courseId') is not None:
                course = find_course(item['courseId'])
                if course is None:
                    raise ValueError(f"Unknown course {item['courseId']}")
                lines.append((course.name, course.price))
            else:
                class_name = parse_text(item, 'className', 'Course is required')
                lines.append((class_name, parse_amount(item.get('amount'))))
        effective_date = parse_effective_date(data)
    except ValueError as exc:
        return bad_request(str(exc))

    result = recorder().record_sale(student_name, lines, effective_date, atomic=bool(data.get('atomic')))
    return jsonify(result.to_dict()), 201


@bp.route('/api/transactions')
def get_transactions():
    args = request.args
    try:
        day = parse_date(args['day'], 'day') if args.get('day') else None
        start = parse_date(args['start'], 'start') if args.get('start') else None
        end = parse_date(args['end'], 'end') if args.get('end') else None
    except ValueError as exc:
        return bad_request(str(exc))

    records = filter_records(
        ledger().read_all(),
        search=args.get('search', '').strip() or None,
        day=day,
        month=args.get('month') or None,
        course=args.get('course') or None,
        start=start,
        end=end,
    )
    sort_key = args.get('sort')
    if sort_key:
        try:
            records = sort_records(records, sort_key, descending=args.get('order') == 'desc')
        except ValueError as exc:
            return bad_request(str(exc))
    return jsonify([r.to_dict() for r in records])


@bp.route('/api/transactions/<int:transaction_id>', methods=['DELETE'])
@login_required
def delete_transaction(transaction_id):
    if not ledger().delete_by_id(transaction_id):
        return jsonify(success=False, error='Transaction not found'), 404
    current_app.logger.info("Transaction %s deleted by admin", transaction_id)
    return jsonify(success=True)


@bp.route('/api/transactions/export')
def export():
    try:
        start = parse_date(request.args.get('start'), 'start')
        end = parse_date(request.args.get('end'), 'end')
        path = export_transactions(ledger(), start, end, current_app.config['EXPORT_DIR'])
    except ValueError as exc:
        return bad_request(str(exc))
    except OSError as exc:
        current_app.logger.exception("Export failed")
        return jsonify(success=False, error=str(exc)), 500
    return jsonify(success=True, filePath=str(path))


@bp.route('/api/revenue')
def revenue():
    try:
        year = int(request.args.get('year', date.today().year))
        month = int(request.args['month']) if request.args.get('month') else None
        if month is not None and not 1 <= month <= 12:
            raise ValueError
    except ValueError:
        return bad_request('Invalid year or month')
    course = request.args.get('course') or None

    records = ledger().read_all()
    if month:
        summary = monthly_revenue(records, year, month, course)
        period = f'{year:04d}-{month:02d}'
    else:
        summary = yearly_revenue(records, year, course)
        period = f'{year:04d}'
    return jsonify(
        period=period,
        course=course,
        summary=summary.to_dict(),
        months=revenue_by_month(records, year, course),
    )


if __name__ == '__main__':
    create_app().run(debug=os.getenv('FLASK_DEBUG') == '1')
