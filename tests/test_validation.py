import json
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

from werkzeug.datastructures import MultiDict

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from dates import is_date_expired  # noqa: E402
from validation import (  # noqa: E402
    DISCOUNT_CODE_LEN, clean_faqs, coupon_matches_filter, coupon_status, faq_row_errors,
    generate_discount_code, parse_category_form, parse_coupon_form, parse_course_form,
    parse_faq_rows, parse_question_paper_form, parse_schedule_form, parse_user_form,
    validate_coupon, validate_course_link, validate_password_change, validate_question_paper,
    validate_registration, validate_schedule, validate_user,
)


COUPON = {
    "courseId": "c1",
    "country": "IN",
    "discountCode": "ABC12345",
    "couponLimit": 5,
    "expiryDate": "2030-01-01T00:00:00.000Z",
    "discountPrice": 100,
    "isActive": True,
}

SCHEDULE = {
    "courseId": "c1",
    "country": "IN",
    "scheduleType": "online",
    "startDate": "2030-03-01T09:00:00.000Z",
    "endDate": "2030-03-20T09:00:00.000Z",
    "days": ["Saturday", "Sunday"],
    "type": "weekend",
    "instructorName": "Asha Rao",
    "accessType": "",
    "state": "",
    "city": "",
    "standardPrice": 1000,
    "offerPrice": 800,
    "isActive": True,
}


def _schedule_form(**overrides):
    fields = {
        "courseId": "c1", "country": "IN", "scheduleType": "online",
        "startDate": "2030-03-01", "endDate": "2030-03-20", "type": "weekend",
        "instructorName": "Asha Rao", "standardPrice": "1000", "offerPrice": "800", "isActive": "1",
    }
    fields.update(overrides)
    form = MultiDict(fields)
    for day in ("Saturday", "Sunday"):
        form.add("days", day)
    return form


def test_generated_discount_codes_are_uppercase_alphanumeric():
    code = generate_discount_code()
    assert len(code) == DISCOUNT_CODE_LEN
    assert code.isalnum() and code.upper() == code


def test_unchanged_coupon_edit_round_trips_original_values():
    form = MultiDict({
        "courseId": "c1", "country": "IN", "discountCode": "abc12345", "couponLimit": "5",
        "expiryDate": "2030-01-01", "discountPrice": "100", "isActive": "1",
    })
    assert parse_coupon_form(form, COUPON) == COUPON


def test_changed_coupon_date_is_sent_as_new_day():
    form = MultiDict({
        "courseId": "c1", "country": "IN", "discountCode": "ABC12345", "couponLimit": "5",
        "expiryDate": "2030-02-01", "discountPrice": "100", "isActive": "1",
    })
    assert parse_coupon_form(form, COUPON)["expiryDate"] == "2030-02-01"


def test_coupon_validation_messages():
    assert validate_coupon(COUPON) == []
    errors = validate_coupon(dict(COUPON, couponLimit=0, discountPrice=0, discountCode=""))
    assert "Discount code is required" in errors
    assert "Coupon limit must be at least 1" in errors
    assert "Discount price must be greater than 0" in errors


def test_coupon_status_marks_past_expiry_as_expired():
    expired = dict(COUPON, expiryDate="2001-01-01")
    assert coupon_status(expired) == "Expired"
    assert coupon_status(COUPON) == "Active"
    assert coupon_status(dict(COUPON, isActive=False)) == "Inactive"
    assert coupon_matches_filter(expired, "expired")
    assert not coupon_matches_filter(expired, "active")
    assert coupon_matches_filter(dict(COUPON, isDeleted=True), "deleted")


def test_coupon_expires_at_the_exact_moment_not_the_day():
    now = datetime.now(timezone.utc)
    earlier_today = dict(COUPON, expiryDate=(now - timedelta(minutes=5)).isoformat())
    later = dict(COUPON, expiryDate=(now + timedelta(minutes=5)).isoformat())
    assert coupon_status(earlier_today) == "Expired"
    assert coupon_status(later) == "Active"
    assert is_date_expired("2024-05-10T12:00:00Z", now="2024-05-10T12:01:00Z")
    assert not is_date_expired("2024-05-10T12:00:00Z", now="2024-05-10T11:59:00Z")


def test_unchanged_schedule_edit_round_trips_original_values():
    assert parse_schedule_form(_schedule_form(), SCHEDULE) == SCHEDULE
    assert validate_schedule(SCHEDULE) == []


def test_schedule_rejects_offer_above_standard_price():
    data = parse_schedule_form(_schedule_form(offerPrice="1200"), SCHEDULE)
    assert validate_schedule(data) == ["Offer price cannot be higher than standard price"]


def test_schedule_requires_dates_for_instructor_led():
    data = parse_schedule_form(_schedule_form(startDate="", endDate=""))
    errors = validate_schedule(data)
    assert "Please select a start date" in errors
    assert "Please select an end date" in errors


def test_schedule_rejects_start_after_end():
    data = parse_schedule_form(_schedule_form(startDate="2030-04-01"))
    assert "Start date cannot be later than end date" in validate_schedule(data)


def test_self_paced_schedule_needs_access_duration_only():
    form = MultiDict({"courseId": "c1", "country": "IN", "scheduleType": "self-paced", "standardPrice": "500"})
    data = parse_schedule_form(form)
    assert validate_schedule(data) == ["Please select an access duration"]
    form["accessType"] = "90"
    assert validate_schedule(parse_schedule_form(form)) == []


def test_classroom_schedule_needs_state_and_city():
    data = parse_schedule_form(_schedule_form(scheduleType="classroom"))
    errors = validate_schedule(data)
    assert "Please enter a state" in errors
    assert "Please enter a city" in errors


def test_faq_rows_parse_in_index_order_and_flag_partial_rows():
    form = MultiDict({
        "question_1": "Second?", "answer_1": "",
        "question_0": "First?", "answer_0": "Yes", "faq_id_0": "f0",
        "question_2": "", "answer_2": "",
    })
    rows = parse_faq_rows(form)
    assert rows[0] == {"_id": "f0", "question": "First?", "answer": "Yes"}
    assert faq_row_errors(rows) == {1: ["Answer is required"]}

    kept, errors = clean_faqs(rows)
    assert kept == [{"_id": "f0", "question": "First?", "answer": "Yes"}]
    assert errors == ["Please complete or clear every FAQ row."]


def test_blank_faq_rows_are_dropped_but_one_faq_is_required():
    kept, errors = clean_faqs([{"question": "", "answer": ""}])
    assert kept == []
    assert errors == ["Please add at least one FAQ with both question and answer."]


def test_category_form_keeps_original_image_references():
    original = {"name": "Agile", "description": "d", "image": [{"path": "/img/a.png", "key": "k1", "_id": "i1", "size": 9}]}
    data = parse_category_form(MultiDict({"name": "Agile", "description": "d"}), original)
    assert data == {"name": "Agile", "description": "d", "image": [{"path": "/img/a.png", "key": "k1", "_id": "i1"}]}


def test_course_form_splits_key_features_and_keeps_uploads():
    form = MultiDict({"title": "PMP", "categoryId": "cat1", "keyFeatures": "35 PDUs\n\n Mock exams \n"})
    data = parse_course_form(form, {"upload": [{"path": "/u.png"}]})
    assert data["keyFeatures"] == ["35 PDUs", "Mock exams"]
    assert data["upload"] == [{"path": "/u.png"}]
    assert data["isActive"] is False


def test_question_paper_content_must_be_valid_json():
    data, errors = parse_question_paper_form(MultiDict({"title": "Set A", "courseId": "c1", "content": "[{"}))
    assert errors and errors[0].startswith("Question content must be valid JSON")

    content = [{"question": "2+2?", "options": ["3", "4"], "answer": "5"}]
    data, errors = parse_question_paper_form(MultiDict({"title": "Set A", "courseId": "c1", "content": json.dumps(content)}))
    assert errors == []
    assert validate_question_paper(data) == ["Question 1: answers must be chosen from the options"]


def test_course_link_requires_http_link():
    data = {"courseId": "c1", "scheduleId": "s1", "name": "Zoom", "link": "zoom.us/j/1"}
    assert validate_course_link(data) == ["Please enter a valid http(s) link"]
    assert validate_course_link(dict(data, link="https://zoom.us/j/1")) == []


def test_user_password_only_required_on_create():
    data = parse_user_form(MultiDict({"fullName": "Ravi", "email": "RAVI@Example.com", "role": "user"}))
    assert data["email"] == "ravi@example.com"
    assert "password" not in data
    assert validate_user(data) == []
    assert validate_user(data, creating=True) == ["Password must be at least 6 characters long"]


def test_registration_and_password_change_rules():
    errors = validate_registration({"fullName": "A", "email": "bad", "password": "123"})
    assert "Contact number is required" in errors
    assert "Please enter a valid email address" in errors
    assert "Password must be at least 6 characters long" in errors
    assert validate_password_change("old", "newpass", "other") == ["New password and confirm password don't match"]
    assert validate_password_change("old", "abc", "abc") == ["New password must be at least 6 characters long"]
    assert validate_password_change("", "", "") == ["Please fill in all password fields"]
    assert validate_password_change("old", "newpass", "newpass") == []
