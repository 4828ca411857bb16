from __future__ import annotations

import math
import re
from datetime import date, datetime, timedelta
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from derivation_engine import (
    ConditionalCharge,
    DerivationRules,
    FinancingTerms,
    MetricRule,
    MetricTransform,
    all_of,
    option_attribute,
    selected,
)
from selection_store import Cardinality, Catalog, OptionSpec, SelectionSnapshot, SlotSpec, filled_slots
from step_controller import StepSpec, UnmetRequirement
from wizard_session import Clock, WizardDefinition

_EMAIL_RE = re.compile(r"(?i)^[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}$")

DYNO_CALIBRATION_FEE = 15000
DYNO_TUNING_HOURS = 2
BRAKING_DISTANCE_FLOOR_M = 32
SECURITY_DEPOSIT_DEFAULT = 5000
SECURITY_DEPOSIT_MIN = 1000
FUEL_PREPAID_FEE = 1000
# preset choices on the rental details and driver steps
RENTAL_SLOT_DEFAULTS: Mapping[str, Tuple[str, ...]] = {
    "rental_period": ("daily",),
    "insurance": ("standard",),
    "fuel": ("return-full",),
    "driver_type": ("self",),
}


def _as_date(value: object) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            return None
    return None


def _as_number(value: object) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str) and value.strip():
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _text(snapshot: SelectionSnapshot, name: str) -> str:
    value = snapshot.field_value(name)
    return str(value).strip() if value is not None else ""


def email_is_valid(value: str) -> bool:
    return bool(_EMAIL_RE.match((value or "").strip()))


def _opt(id: str, label: str, price: float = 0, hours: float = 0, *, effects: Optional[Mapping[str, float]] = None,
         fits: Sequence[str] = (), **attributes: object) -> OptionSpec:
    return OptionSpec(
        id=id,
        label=label,
        price=price,
        duration=hours,
        effects=dict(effects or {}),
        tags=frozenset(fits),
        attributes=dict(attributes),
    )


def _choices(*pairs: Tuple[str, str]) -> Tuple[OptionSpec, ...]:
    return tuple(OptionSpec(id=i, label=label) for i, label in pairs)


# region performance customization

_ALL_MAKES = ("honda", "toyota", "mazda", "subaru")

PERFORMANCE_UPGRADE_SLOTS = (
    "intake",
    "exhaust",
    "ecu",
    "transmission",
    "clutch",
    "differential",
    "coilovers",
    "springs",
    "sway_bars",
    "bushings",
    "caliper",
    "rotor",
    "pad",
    "line",
)


def performance_catalog() -> Catalog:
    def part(slot: str, label: str, *options: OptionSpec) -> SlotSpec:
        return SlotSpec(name=slot, label=label, cardinality=Cardinality.SINGLE, options=tuple(options), group="parts")

    return Catalog(
        slots=(
            part(
                "intake",
                "Intake",
                _opt("intake1", "High-Flow Cold Air Intake", 15000, 1.5, effects={"hp": 8, "torque": 10}, fits=("honda", "toyota", "mazda")),
                _opt("intake2", "Ram Air System", 22000, 2, effects={"hp": 12, "torque": 15}, fits=("honda", "mazda", "subaru")),
            ),
            part(
                "exhaust",
                "Exhaust",
                _opt("exhaust1", "Catback Exhaust System", 45000, 3, effects={"hp": 10, "torque": 12}, fits=_ALL_MAKES),
                _opt("exhaust2", "Performance Headers", 35000, 4, effects={"hp": 15, "torque": 18}, fits=("honda", "mazda", "subaru")),
            ),
            part(
                "ecu",
                "ECU tuning",
                _opt("ecu1", "Stage 1 ECU Tune", 25000, 2, effects={"hp": 20, "torque": 25, "fuel_efficiency_pct": -5}, fits=_ALL_MAKES, stage="stage1"),
                _opt("ecu2", "Stage 2 ECU Tune", 35000, 3, effects={"hp": 35, "torque": 40, "fuel_efficiency_pct": -10}, fits=("honda", "mazda", "subaru"), stage="stage2"),
                _opt("ecu3", "Stage 3 Performance Package", 65000, 6, effects={"hp": 60, "torque": 70, "fuel_efficiency_pct": -15}, fits=("mazda", "subaru"), stage="stage3"),
            ),
            part("transmission", "Transmission", _opt("trans1", "Short Shifter Kit", 15000, 2, fits=_ALL_MAKES)),
            part("clutch", "Clutch", _opt("clutch1", "Performance Clutch Kit", 35000, 4, fits=_ALL_MAKES)),
            part("differential", "Differential", _opt("diff1", "Limited Slip Differential", 45000, 5, fits=("mazda", "subaru"))),
            part("coilovers", "Coilovers", _opt("coil1", "Adjustable Coilover System", 75000, 4, effects={"lateral_g": 0.15}, fits=_ALL_MAKES)),
            part("springs", "Springs", _opt("spring1", "Lowering Springs", 20000, 3, effects={"lateral_g": 0.08}, fits=_ALL_MAKES)),
            part("sway_bars", "Sway bars", _opt("sway1", "Anti-Roll Bar Kit", 25000, 3, effects={"lateral_g": 0.1}, fits=_ALL_MAKES)),
            part("bushings", "Bushings", _opt("bush1", "Polyurethane Bushing Kit", 15000, 6, effects={"lateral_g": 0.05}, fits=_ALL_MAKES)),
            part("caliper", "Brake calipers", _opt("caliper1", "4-Piston Brake Calipers", 45000, 3, effects={"braking": 5}, fits=_ALL_MAKES)),
            part("rotor", "Brake rotors", _opt("rotor1", "Drilled & Slotted Rotors", 35000, 2, effects={"braking": 3}, fits=_ALL_MAKES)),
            part("pad", "Brake pads", _opt("pad1", "Performance Brake Pads", 15000, 1, effects={"braking": 4}, fits=_ALL_MAKES)),
            part("line", "Brake lines", _opt("line1", "Stainless Steel Brake Lines", 12000, 2, effects={"braking": 2}, fits=_ALL_MAKES)),
            SlotSpec(
                name="specialist",
                label="Installation specialist",
                cardinality=Cardinality.SINGLE,
                group="labor",
                options=(
                    _opt("spec1", "SpeedTech Performance", 25000, has_dyno=True, rating=4.8, distance_km=4.5),
                    _opt("spec2", "Apex Motorsports", 35000, has_dyno=True, rating=4.9, distance_km=7.8),
                    _opt("spec3", "Precision Auto Tuning", 30000, has_dyno=True, rating=4.6, distance_km=6.2),
                    _opt("spec4", "JDM Performance", 20000, has_dyno=False, rating=4.7, distance_km=9.5),
                ),
            ),
        )
    )


def performance_rules() -> DerivationRules:
    return DerivationRules(
        charges=(
            ConditionalCharge(
                code="DYNO_CALIBRATION",
                description="Dyno calibration",
                predicate=all_of(selected("ecu"), option_attribute("specialist", "has_dyno", True)),
                amount=DYNO_CALIBRATION_FEE,
                group="dyno",
            ),
            ConditionalCharge(
                code="DYNO_TUNING_TIME",
                description="Dyno tuning time",
                predicate=all_of(selected("ecu"), selected("specialist")),
                duration=DYNO_TUNING_HOURS,
                group="labor",
            ),
        ),
        metrics=(
            MetricRule(
                name="acceleration",
                label="0-100 km/h",
                baseline=8.5,
                effect="hp",
                transform=MetricTransform.POWER_DAMPENING,
                unit="s",
                scale=200.0,
                precision=1,
                lower_is_better=True,
            ),
            MetricRule(
                name="quarter_mile",
                label="Quarter mile",
                baseline=16.2,
                effect="hp",
                transform=MetricTransform.POWER_DAMPENING,
                unit="s",
                scale=200.0,
                precision=1,
                lower_is_better=True,
            ),
            MetricRule(
                name="braking_distance",
                label="Braking 100-0",
                baseline=42,
                effect="braking",
                transform=MetricTransform.REDUCTION,
                unit="m",
                floor=BRAKING_DISTANCE_FLOOR_M,
                precision=0,
                lower_is_better=True,
            ),
            MetricRule(
                name="lateral_g",
                label="Lateral grip",
                baseline=0.85,
                effect="lateral_g",
                transform=MetricTransform.ADDITIVE,
                unit="g",
                precision=2,
            ),
        ),
        financing=FinancingTerms(months=24, annual_rate=0.10),
    )


def _performance_installation_check(clock: Clock, catalog: Catalog) -> Callable[[SelectionSnapshot], List[UnmetRequirement]]:
    def _check(snapshot: SelectionSnapshot) -> List[UnmetRequirement]:
        unmet: List[UnmetRequirement] = []
        if not filled_slots(snapshot, PERFORMANCE_UPGRADE_SLOTS):
            unmet.append(UnmetRequirement("upgrades", "Select at least one upgrade before booking installation."))

        raw_date = snapshot.field_value("installation_date")
        if raw_date is not None and str(raw_date).strip():
            install_on = _as_date(raw_date)
            if install_on is None:
                unmet.append(UnmetRequirement("installation_date", "Installation date is not a valid date."))
            elif install_on < clock().date():
                unmet.append(UnmetRequirement("installation_date", "Installation date cannot be in the past."))

        make = _text(snapshot, "vehicle_make").lower()
        if make:
            for slot_name in PERFORMANCE_UPGRADE_SLOTS:
                spec = catalog.slot(slot_name)
                for option_id in snapshot.selected(slot_name):
                    opt = spec.option(option_id) if spec is not None else None
                    if opt is not None and opt.tags and make not in opt.tags:
                        unmet.append(
                            UnmetRequirement(slot_name, f"{opt.label} does not fit a {make.title()} vehicle.")
                        )
        return unmet

    return _check


def build_performance_wizard(clock: Clock = datetime.now) -> WizardDefinition:
    catalog = performance_catalog()
    return WizardDefinition(
        key="performance",
        title="Performance Enhancement Studio",
        catalog=catalog,
        steps=(
            StepSpec(key="engine", label="Engine"),
            StepSpec(key="drivetrain", label="Drivetrain"),
            StepSpec(key="suspension", label="Suspension"),
            StepSpec(key="brakes", label="Brakes"),
            StepSpec(
                key="installation",
                label="Installation",
                required_slots=("specialist",),
                required_fields=("installation_date",),
                custom_validator=_performance_installation_check(clock, catalog),
            ),
        ),
        rules=performance_rules(),
        field_defaults=lambda now: {"installation_date": (now + timedelta(days=7)).date(), "vehicle_make": ""},
        field_labels={"installation_date": "Installation date", "vehicle_make": "Vehicle make"},
        reference_prefix="PERF",
        submit_path="/api/customization-projects",
    )


# endregion performance customization

# region rental booking


def rental_days(snapshot: SelectionSnapshot) -> int:
    """Whole rental days between start and end date; at least one."""
    start = _as_date(snapshot.field_value("start_date"))
    end = _as_date(snapshot.field_value("end_date"))
    if start is None or end is None:
        return 1
    return max(1, (end - start).days)


def _vehicle_charge(opt: OptionSpec, snapshot: SelectionSnapshot) -> float:
    days = rental_days(snapshot)
    period = snapshot.single("rental_period") or "daily"
    daily = float(opt.attr("daily_rate", 0) or 0)
    if period == "weekly":
        return float(opt.attr("weekly_rate", 0) or 0) * math.ceil(days / 7)
    if period == "monthly":
        return float(opt.attr("monthly_rate", 0) or 0) * math.ceil(days / 30)
    if period == "hourly":
        # Hourly bookings are quoted as one 8-hour block at the half-up rounded hourly rate.
        return math.floor(daily / 8 + 0.5) * 8
    return daily * days


def _per_day(opt: OptionSpec, snapshot: SelectionSnapshot) -> float:
    return opt.price * rental_days(snapshot)


def rental_catalog() -> Catalog:
    def vehicle(id: str, label: str, daily: int, weekly: int, monthly: int, status: str, kind: str) -> OptionSpec:
        return _opt(
            id,
            label,
            daily,
            daily_rate=daily,
            weekly_rate=weekly,
            monthly_rate=monthly,
            status=status,
            vehicle_type=kind,
        )

    return Catalog(
        slots=(
            SlotSpec(
                name="vehicle",
                label="Vehicle",
                cardinality=Cardinality.SINGLE,
                group="rental",
                price_resolver=_vehicle_charge,
                options=(
                    vehicle("1", "Toyota Innova Crysta", 2500, 15000, 60000, "Available", "SUV"),
                    vehicle("2", "Mahindra Bolero", 1800, 11000, 45000, "On Rent", "SUV"),
                    vehicle("3", "Tata Ace", 1200, 7000, 28000, "In Maintenance", "Mini Truck"),
                    vehicle("4", "Ashok Leyland Dost", 1500, 9000, 36000, "On Rent", "Light Truck"),
                    vehicle("5", "Bajaj RE Auto", 800, 4800, 19000, "Available", "3-Wheeler"),
                ),
            ),
            SlotSpec(
                name="client",
                label="Client",
                cardinality=Cardinality.SINGLE,
                group="client",
                options=(
                    _opt("1", "ABC Travels", client_type="corporate", email="info@abctravels.com"),
                    _opt("2", "XYZ Tours", client_type="corporate", email="mehul@xyztours.com"),
                    _opt("3", "Fast Logistics", client_type="corporate", email="anand@fastlogistics.com"),
                    _opt("4", "Ravi Shankar", client_type="individual", email="ravi.shankar@gmail.com"),
                    _opt("5", "Priya Mehta", client_type="individual", email="priya.mehta@yahoo.com"),
                ),
            ),
            SlotSpec(
                name="rental_period",
                label="Rental period",
                cardinality=Cardinality.SINGLE,
                options=_choices(("hourly", "Hourly"), ("daily", "Daily"), ("weekly", "Weekly"), ("monthly", "Monthly")),
            ),
            SlotSpec(
                name="insurance",
                label="Insurance",
                cardinality=Cardinality.SINGLE,
                group="insurance",
                price_resolver=_per_day,
                options=(
                    _opt("basic", "Basic Coverage", 200),
                    _opt("standard", "Standard Coverage", 350),
                    _opt("premium", "Premium Coverage", 500),
                ),
            ),
            SlotSpec(
                name="fuel",
                label="Fuel option",
                cardinality=Cardinality.SINGLE,
                group="fuel",
                options=(
                    _opt("prepaid", "Prepaid fuel", FUEL_PREPAID_FEE),
                    _opt("return-full", "Return full", 0),
                ),
            ),
            SlotSpec(
                name="extras",
                label="Additional options",
                cardinality=Cardinality.MULTI,
                group="extras",
                price_resolver=_per_day,
                options=(
                    _opt("gps", "GPS Device", 100),
                    _opt("child-seat", "Child Seat", 200),
                    _opt("roof-rack", "Roof Rack", 150),
                    _opt("bluetooth", "Bluetooth Car Kit", 50),
                    _opt("driver-kit", "Driver Amenity Kit", 120),
                ),
            ),
            SlotSpec(
                name="driver_type",
                label="Driver type",
                cardinality=Cardinality.SINGLE,
                options=_choices(("self", "Self-drive"), ("company", "Company driver")),
            ),
            SlotSpec(
                name="driver",
                label="Driver",
                cardinality=Cardinality.SINGLE,
                group="driver",
                options=(
                    _opt("1", "Rajesh Kumar", languages=("Hindi", "Tamil", "English"), rating=4.8, status="Available"),
                    _opt("2", "Suresh Singh", languages=("Hindi", "English"), rating=4.5, status="On Duty"),
                    _opt("3", "Venkatesh Rao", languages=("Telugu", "Tamil", "English"), rating=4.7, status="On Duty"),
                    _opt("4", "Mukesh Patel", languages=("Gujarati", "Hindi", "English"), rating=4.3, status="Available"),
                ),
            ),
            SlotSpec(
                name="payment_method",
                label="Payment method",
                cardinality=Cardinality.SINGLE,
                options=_choices(
                    ("credit-card", "Credit card"),
                    ("bank-transfer", "Bank transfer"),
                    ("digital-wallet", "Digital wallet"),
                    ("cash", "Cash"),
                    ("corporate-account", "Corporate account"),
                ),
            ),
        )
    )


def _vehicle_availability_check(catalog: Catalog) -> Callable[[SelectionSnapshot], List[UnmetRequirement]]:
    spec = catalog.slot("vehicle")

    def _check(snapshot: SelectionSnapshot) -> List[UnmetRequirement]:
        vehicle_id = snapshot.single("vehicle")
        if vehicle_id is None:
            return []
        opt = spec.option(vehicle_id) if spec is not None else None
        if opt is not None and opt.attr("status") != "Available":
            return [UnmetRequirement("vehicle", f"{opt.label} is not available ({opt.attr('status')}).")]
        return []

    return _check


def _check_client(snapshot: SelectionSnapshot) -> List[UnmetRequirement]:
    if snapshot.is_filled("client"):
        return []
    unmet: List[UnmetRequirement] = []
    if not _text(snapshot, "new_client_name"):
        unmet.append(UnmetRequirement("client", "Select an existing client or enter a new client name."))
    email = _text(snapshot, "new_client_email")
    if email and not email_is_valid(email):
        unmet.append(UnmetRequirement("new_client_email", "Invalid email address."))
    return unmet


def _check_rental_dates(snapshot: SelectionSnapshot) -> List[UnmetRequirement]:
    start = _as_date(snapshot.field_value("start_date"))
    end = _as_date(snapshot.field_value("end_date"))
    if start is None or end is None:
        # Missing dates are reported through required_fields.
        return []
    if end < start:
        return [UnmetRequirement("end_date", "End date must be on or after the start date.")]
    return []


def _check_driver(snapshot: SelectionSnapshot) -> List[UnmetRequirement]:
    if snapshot.single("driver_type") == "company" and not snapshot.is_filled("driver"):
        return [UnmetRequirement("driver", "Please assign a company driver.")]
    return []


def _check_payment(snapshot: SelectionSnapshot) -> List[UnmetRequirement]:
    unmet: List[UnmetRequirement] = []
    deposit = _as_number(snapshot.field_value("security_deposit"))
    if deposit is None or deposit < SECURITY_DEPOSIT_MIN:
        unmet.append(
            UnmetRequirement("security_deposit", f"Security deposit must be at least {SECURITY_DEPOSIT_MIN}.")
        )
    if snapshot.field_value("agree_to_terms") is not True:
        unmet.append(UnmetRequirement("agree_to_terms", "You must agree to the terms and conditions."))
    return unmet


def build_rental_wizard(clock: Clock = datetime.now) -> WizardDefinition:
    catalog = rental_catalog()
    return WizardDefinition(
        key="rental",
        title="New Rental",
        catalog=catalog,
        steps=(
            StepSpec(
                key="vehicle",
                label="Vehicle Selection",
                required_slots=("vehicle",),
                custom_validator=_vehicle_availability_check(catalog),
            ),
            StepSpec(key="client", label="Client Selection", custom_validator=_check_client),
            StepSpec(
                key="details",
                label="Rental Details",
                required_slots=("rental_period", "insurance", "fuel"),
                required_fields=("start_date", "end_date"),
                custom_validator=_check_rental_dates,
            ),
            StepSpec(key="driver", label="Driver Assignment", required_slots=("driver_type",), custom_validator=_check_driver),
            StepSpec(key="payment", label="Payment & Documentation", required_slots=("payment_method",), custom_validator=_check_payment),
        ),
        rules=DerivationRules(),
        field_defaults=lambda now: {
            "start_date": now.date(),
            "end_date": now.date() + timedelta(days=1),
            "new_client_name": "",
            "new_client_email": "",
            "security_deposit": SECURITY_DEPOSIT_DEFAULT,
            "agree_to_terms": False,
        },
        slot_defaults=RENTAL_SLOT_DEFAULTS,
        field_labels={
            "start_date": "Start date",
            "end_date": "End date",
            "new_client_name": "Client name",
            "new_client_email": "Client email",
            "security_deposit": "Security deposit",
            "agree_to_terms": "Terms",
        },
        reference_prefix="RNT",
        submit_path="/api/rentals",
    )


# endregion rental booking

# region driver onboarding


def onboarding_catalog() -> Catalog:
    def single(name: str, label: str, *pairs: Tuple[str, str]) -> SlotSpec:
        return SlotSpec(name=name, label=label, cardinality=Cardinality.SINGLE, options=_choices(*pairs))

    def multi(name: str, label: str, *pairs: Tuple[str, str]) -> SlotSpec:
        return SlotSpec(name=name, label=label, cardinality=Cardinality.MULTI, options=_choices(*pairs))

    return Catalog(
        slots=(
            single("gender", "Gender", ("male", "Male"), ("female", "Female"), ("other", "Other")),
            single(
                "license_type",
                "License type",
                ("light", "Light motor vehicle"),
                ("medium", "Medium goods vehicle"),
                ("heavy", "Heavy goods vehicle"),
                ("commercial", "Commercial"),
                ("specializedCommercial", "Specialized commercial"),
            ),
            multi(
                "license_categories",
                "License categories",
                ("LMV", "LMV"),
                ("MCWG", "MCWG"),
                ("HMV", "HMV"),
                ("HGMV", "HGMV"),
                ("PSV", "PSV"),
                ("TRANS", "Transport"),
            ),
            multi(
                "vehicle_types",
                "Vehicle types",
                ("car", "Car"),
                ("suv", "SUV"),
                ("van", "Van"),
                ("bus", "Bus"),
                ("truck", "Truck"),
                ("three-wheeler", "3-Wheeler"),
            ),
            multi(
                "expertise",
                "Expertise",
                ("city", "City driving"),
                ("highway", "Highway driving"),
                ("hill", "Hill driving"),
                ("night", "Night driving"),
                ("vip", "VIP / chauffeur"),
                ("goods", "Goods transport"),
            ),
            multi(
                "languages",
                "Languages",
                ("english", "English"),
                ("hindi", "Hindi"),
                ("tamil", "Tamil"),
                ("telugu", "Telugu"),
                ("gujarati", "Gujarati"),
                ("marathi", "Marathi"),
            ),
            single(
                "identity_proof",
                "Identity proof",
                ("aadhar", "Aadhaar"),
                ("passport", "Passport"),
                ("voterID", "Voter ID"),
                ("drivingLicense", "Driving license"),
            ),
            single(
                "address_proof",
                "Address proof",
                ("aadhar", "Aadhaar"),
                ("passport", "Passport"),
                ("utilityBill", "Utility bill"),
                ("bankStatement", "Bank statement"),
            ),
            single("employment_type", "Employment type", ("fullTime", "Full time"), ("partTime", "Part time"), ("contract", "Contract")),
            single(
                "compensation_type",
                "Compensation type",
                ("fixed", "Fixed"),
                ("hourly", "Hourly"),
                ("commission", "Commission"),
                ("mixed", "Mixed"),
            ),
            single(
                "availability_pattern",
                "Availability",
                ("weekdays", "Weekdays"),
                ("weekends", "Weekends"),
                ("rotating", "Rotating"),
                ("flexible", "Flexible"),
            ),
            multi(
                "performance_metrics",
                "Performance metrics",
                ("safety", "Safety record"),
                ("punctuality", "Punctuality"),
                ("fuel", "Fuel efficiency"),
                ("feedback", "Customer feedback"),
            ),
        )
    )


def _check_personal(snapshot: SelectionSnapshot) -> List[UnmetRequirement]:
    unmet: List[UnmetRequirement] = []
    name = _text(snapshot, "full_name")
    if name and len(name) < 3:
        unmet.append(UnmetRequirement("full_name", "Full name must be at least 3 characters."))
    email = _text(snapshot, "email")
    if email and not email_is_valid(email):
        unmet.append(UnmetRequirement("email", "Invalid email address."))
    phone = _text(snapshot, "phone")
    if phone and len(re.sub(r"\D", "", phone)) < 10:
        unmet.append(UnmetRequirement("phone", "Phone number must be at least 10 digits."))
    return unmet


def _check_license(snapshot: SelectionSnapshot) -> List[UnmetRequirement]:
    unmet: List[UnmetRequirement] = []
    number = _text(snapshot, "license_number")
    if number and len(number) < 8:
        unmet.append(UnmetRequirement("license_number", "License number must be at least 8 characters."))
    issued = _as_date(snapshot.field_value("license_issue_date"))
    expires = _as_date(snapshot.field_value("license_expiry_date"))
    if issued is not None and expires is not None and expires <= issued:
        unmet.append(UnmetRequirement("license_expiry_date", "Expiry date must be after the issue date."))
    return unmet


def _check_background(snapshot: SelectionSnapshot) -> List[UnmetRequirement]:
    if snapshot.field_value("background_check_consent") is not True:
        return [UnmetRequirement("background_check_consent", "Consent to the background check is required.")]
    return []


def _check_employment(snapshot: SelectionSnapshot) -> List[UnmetRequirement]:
    unmet: List[UnmetRequirement] = []
    salary = _as_number(snapshot.field_value("salary"))
    if salary is None or salary < 1:
        unmet.append(UnmetRequirement("salary", "Salary amount is required."))
    days = _as_number(snapshot.field_value("days_per_week"))
    if days is None or not 1 <= days <= 7:
        unmet.append(UnmetRequirement("days_per_week", "Days per week must be between 1 and 7."))
    if snapshot.field_value("terms_accepted") is not True:
        unmet.append(UnmetRequirement("terms_accepted", "You must accept the employment terms."))
    return unmet


def build_onboarding_wizard(clock: Clock = datetime.now) -> WizardDefinition:
    return WizardDefinition(
        key="onboarding",
        title="Add Driver",
        catalog=onboarding_catalog(),
        steps=(
            StepSpec(
                key="personal",
                label="Personal Information",
                required_slots=("gender",),
                required_fields=("full_name", "email", "phone", "address"),
                custom_validator=_check_personal,
            ),
            StepSpec(
                key="license",
                label="License Information",
                required_slots=("license_type", "license_categories"),
                required_fields=("license_number", "license_issue_date", "license_expiry_date"),
                custom_validator=_check_license,
            ),
            StepSpec(
                key="experience",
                label="Experience & Skills",
                required_slots=("vehicle_types", "expertise", "languages"),
                required_fields=("years_of_experience",),
            ),
            StepSpec(
                key="background",
                label="Background Verification",
                required_slots=("identity_proof", "address_proof"),
                required_fields=("identity_number",),
                custom_validator=_check_background,
            ),
            StepSpec(
                key="employment",
                label="Employment Terms",
                required_slots=("employment_type", "compensation_type", "availability_pattern", "performance_metrics"),
                required_fields=("reporting_manager",),
                custom_validator=_check_employment,
            ),
        ),
        rules=DerivationRules(),
        field_defaults=lambda now: {
            "full_name": "",
            "email": "",
            "phone": "",
            "address": "",
            "license_number": "",
            "license_issue_date": None,
            "license_expiry_date": None,
            "years_of_experience": 0,
            "identity_number": "",
            "background_check_consent": False,
            "salary": 0,
            "days_per_week": 6,
            "reporting_manager": "",
            "terms_accepted": False,
            "joining_date": now.date(),
        },
        field_labels={
            "full_name": "Full name",
            "email": "Email",
            "phone": "Phone",
            "address": "Address",
            "license_number": "License number",
            "license_issue_date": "Issue date",
            "license_expiry_date": "Expiry date",
            "years_of_experience": "Years of experience",
            "identity_number": "Identity number",
            "reporting_manager": "Reporting manager",
        },
        reference_prefix="DRV",
        submit_path="/api/drivers",
    )


# endregion driver onboarding

WIZARD_BUILDERS: Dict[str, Callable[[Clock], WizardDefinition]] = {
    "performance": build_performance_wizard,
    "rental": build_rental_wizard,
    "onboarding": build_onboarding_wizard,
}


def build_wizard(key: str, clock: Clock = datetime.now) -> WizardDefinition:
    builder = WIZARD_BUILDERS.get(key)
    if builder is None:
        raise KeyError(f"Unknown wizard: {key!r} (expected one of {sorted(WIZARD_BUILDERS)})")
    return builder(clock)
