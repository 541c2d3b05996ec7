from __future__ import annotations

from typing import Optional

from flask import Blueprint, current_app, flash, redirect, render_template, request, session, url_for

from ..domain import ShopType, UserRole
from ..errors import AuthError, InvalidCode, VerificationEnded
from ..session import current_user, login_user, logout_user
from ..store import get_store
from ..utils.geo import parse_coordinates
from ..utils.mail import send_otp_email
from ..utils.otp import generate_otp
from .flow import AuthFlow, AuthOutcome, Registration, load_pending

auth_bp = Blueprint('auth', __name__)

PENDING_KEY = 'pending_verification_id'
REGISTRABLE_ROLES = (UserRole.CUSTOMER, UserRole.RETAILER)


def _build_flow() -> AuthFlow:
    cfg = current_app.config
    store = get_store()
    return AuthFlow(
        store,
        send_otp_email,
        cfg['ADMIN_CREDENTIALS'],
        otp_ttl_minutes=cfg['OTP_EXP_MINUTES'],
        max_attempts=cfg['OTP_MAX_ATTEMPTS'],
        code_factory=generate_otp,
        pending=load_pending(store, session.get(PENDING_KEY)),
    )


def _save_pending(flow: AuthFlow) -> None:
    if flow.pending:
        session[PENDING_KEY] = flow.pending.id
    else:
        session.pop(PENDING_KEY, None)


def _parse_role(raw: Optional[str], default: UserRole = UserRole.CUSTOMER) -> Optional[UserRole]:
    try:
        return UserRole((raw or default.value).upper())
    except ValueError:
        return None


def _finish(outcome: AuthOutcome):
    if outcome.notice:
        flash(outcome.notice, 'warning')
    if outcome.resolved:
        session.pop(PENDING_KEY, None)
        login_user(outcome.user)
        return redirect(url_for('shell.index'))
    return redirect(url_for('auth.verify'))


@auth_bp.route('/login', methods=['GET', 'POST'])
def login():
    if current_user() is not None:
        return redirect(url_for('shell.index'))

    role = _parse_role(request.values.get('role')) or UserRole.CUSTOMER
    if request.method == 'POST':
        email = request.form.get('email', '').strip()
        password = request.form.get('password', '')
        chosen = _parse_role(request.form.get('role'))
        if chosen is None:
            flash('Choose a valid account type.', 'warning')
            return render_template('auth/login.html', role=role, email=email)

        flow = _build_flow()
        try:
            outcome = flow.login(email, password, chosen)
        except AuthError as exc:
            flash(str(exc), 'danger')
            return render_template('auth/login.html', role=chosen, email=email)
        _save_pending(flow)
        return _finish(outcome)

    return render_template('auth/login.html', role=role, email='')


@auth_bp.route('/register', methods=['GET', 'POST'])
def register():
    if current_user() is not None:
        return redirect(url_for('shell.index'))

    role = _parse_role(request.values.get('role'))
    if role not in REGISTRABLE_ROLES:
        # Admins only sign in.
        return redirect(url_for('auth.login', role=UserRole.ADMIN.value))

    if request.method == 'POST':
        form = request.form
        try:
            shop_type = ShopType(form.get('shop_type') or ShopType.GROCERIES.value)
        except ValueError:
            flash('Choose a valid shop type.', 'warning')
            return render_template('auth/register.html', role=role, shop_types=list(ShopType), form=form)

        registration = Registration(
            name=form.get('name', '').strip(),
            email=form.get('email', '').strip(),
            password=form.get('password', ''),
            role=role,
            contact=form.get('contact', '').strip(),
            address=form.get('address', '').strip(),
            landmarks=form.get('landmarks', '').strip() or None,
            shop_type=shop_type,
            area=form.get('area', '').strip(),
        )
        coordinates = None
        if role == UserRole.RETAILER:
            coordinates = parse_coordinates(form.get('latitude'), form.get('longitude'), 'shop registration')

        flow = _build_flow()
        try:
            outcome = flow.register(registration, coordinates)
        except AuthError as exc:
            flash(str(exc), 'danger')
            return render_template('auth/register.html', role=role, shop_types=list(ShopType), form=form)
        _save_pending(flow)
        return _finish(outcome)

    return render_template('auth/register.html', role=role, shop_types=list(ShopType), form={})


@auth_bp.route('/verify', methods=['GET', 'POST'])
def verify():
    flow = _build_flow()
    pending = flow.pending
    if pending is None:
        if session.pop(PENDING_KEY, None):
            flash(str(VerificationEnded()), 'warning')
        return redirect(url_for('auth.login'))

    if request.method == 'POST':
        try:
            outcome = flow.verify(request.form.get('otp', '').strip())
        except InvalidCode as exc:
            _save_pending(flow)
            flash(str(exc), 'danger')
            if flow.pending is None:
                return redirect(url_for('auth.login', role=pending.user.role.value))
            return render_template('auth/verify.html', email=pending.user.email)
        return _finish(outcome)

    return render_template('auth/verify.html', email=pending.user.email)


@auth_bp.route('/verify/cancel', methods=['POST'])
def cancel_verification():
    _build_flow().reset()
    session.pop(PENDING_KEY, None)
    return redirect(url_for('auth.login'))


@auth_bp.route('/logout')
def logout():
    logout_user()
    return redirect(url_for('auth.login'))
