"""
Landed Cost Calculator - FastHTML

Calculator form with HTMX results panel, plus a JSON API for the engine.
Run with: python main.py
"""

from fasthtml.common import *
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route
import logging
import os
from dotenv import load_dotenv

load_dotenv()

from calculation_engine import calculate_landed_cost, validate_shipment
from calculation_errors import LandedCostError
from calculation_mapper import (
    country_config_to_wire,
    map_form_to_shipment,
    parse_shipment_payload,
    result_to_wire,
)
from calculation_models import ContainerType, Incoterm, LandedCostResult, NoteCategory, ShippingMethod
from services.country_duty_service import COUNTRY_DUTY_TABLE, DEFAULT_COUNTRY_DUTY_LOOKUP
from services.engine_settings import get_app_secret, get_engine_config

logger = logging.getLogger(__name__)

# ============================================================================
# APP SETUP
# ============================================================================

app, rt = fast_app(
    secret_key=get_app_secret(),
    live=os.getenv("LIVE_RELOAD", "").lower() in ("1", "true"),
)

# ============================================================================
# STYLES
# ============================================================================

APP_STYLES = """
* { box-sizing: border-box; }
body { font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, sans-serif; margin: 0; padding: 0; background: #f5f5f5; color: #333; line-height: 1.6; }
nav { background: #1a1a2e; color: white; padding: 1rem 0; }
nav .nav-container { max-width: 1200px; margin: 0 auto; padding: 0 1rem; display: flex; justify-content: space-between; align-items: center; }
nav ul { list-style: none; margin: 0; padding: 0; display: flex; gap: 1.5rem; align-items: center; }
nav a { color: #a0a0ff; text-decoration: none; }
nav strong { color: white; font-size: 1.2rem; }
h1, h2, h3 { color: #1a1a2e; margin-top: 0; }
input, select, button { padding: 0.5rem; font-size: 1rem; border: 1px solid #ddd; border-radius: 4px; }
button { background: #4a4aff; color: white; border: none; cursor: pointer; padding: 0.75rem 1.5rem; }
table { width: 100%; border-collapse: collapse; background: white; margin-top: 1rem; }
th, td { padding: 0.5rem 0.75rem; text-align: left; border-bottom: 1px solid #eee; }
th { background: #f8f9fa; font-weight: 600; }
td.num, th.num { text-align: right; }
label { display: block; margin-bottom: 1rem; font-weight: 500; }
label input, label select { margin-top: 0.25rem; width: 100%; }
.container { max-width: 1200px; margin: 0 auto; padding: 1rem; }
.card { background: white; padding: 1.5rem; border-radius: 8px; margin-bottom: 1rem; box-shadow: 0 1px 3px rgba(0,0,0,0.1); }
.form-row { display: grid; grid-template-columns: 1fr 1fr 1fr; gap: 1rem; }
.stats-grid { display: grid; grid-template-columns: repeat(auto-fit, minmax(200px, 1fr)); gap: 1rem; }
.stat-card { text-align: center; padding: 1rem; }
.stat-value { font-size: 2rem; font-weight: bold; color: #4a4aff; }
.alert { padding: 1rem; border-radius: 4px; margin-bottom: 1rem; }
.alert-error { background: #f8d7da; color: #721c24; }
.note { display: inline-block; padding: 0.1rem 0.4rem; border-radius: 4px; font-size: 0.8rem; margin-right: 0.5rem; }
.note-info { background: #cce5ff; color: #004085; }
.note-warning { background: #fff3cd; color: #856404; }
.note-assumption { background: #e2e3e5; color: #383d41; }
.note-estimate { background: #d1ecf1; color: #0c5460; }
.note-actual { background: #d4edda; color: #155724; }
@media (max-width: 768px) { .form-row { grid-template-columns: 1fr; } }
"""

# ============================================================================
# LAYOUT HELPERS
# ============================================================================

def nav_bar():
    """Navigation bar component"""
    return Nav(
        Div(
            Ul(Li(Strong("Landed Cost"))),
            Ul(Li(A("Calculator", href="/"))),
            cls="nav-container"
        )
    )


def page_layout(title, *content):
    """Standard page layout wrapper"""
    return Html(
        Head(
            Title(f"{title} - Landed Cost"),
            Meta(charset="utf-8"),
            Meta(name="viewport", content="width=device-width, initial-scale=1"),
            Style(APP_STYLES),
            # HTMX
            Script(src="https://unpkg.com/htmx.org@1.9.10")
        ),
        Body(
            nav_bar(),
            Main(Div(*content, cls="container"))
        )
    )


def format_money(value, currency="USD"):
    """Format money value"""
    if value is None:
        return "—"
    symbols = {"USD": "$", "EUR": "€", "GBP": "£", "CNY": "¥", "JPY": "¥"}
    symbol = symbols.get(currency, f"{currency} ")
    return f"{symbol}{value:,.2f}"


def note_badge(category: NoteCategory):
    return Span(category.value, cls=f"note note-{category.value}")


# ============================================================================
# CALCULATOR FORM
# ============================================================================

def select_field(label, name, options, selected=None):
    return Label(label,
        Select(
            *[Option(text, value=value, selected=value == selected) for value, text in options],
            name=name
        )
    )


def number_field(label, name, value="", step="any", placeholder=""):
    return Label(label, Input(name=name, type="number", value=value, min="0", step=step, placeholder=placeholder))


def calculator_form():
    """Shipment form; posts to /calculate and swaps the results panel"""
    countries = sorted(COUNTRY_DUTY_TABLE)

    return Form(
        Div(
            H3("Product"),
            Div(
                Label("Product Name", Input(name="product_name", placeholder="Laptop")),
                Label("HS Code", Input(name="hs_code", placeholder="847130")),
                Label("Category", Input(name="category")),
                cls="form-row"
            ),
            cls="card"
        ),
        Div(
            H3("Cost"),
            Div(
                number_field("Base Cost", "base_cost", step="0.01"),
                number_field("Quantity", "quantity", value="1", step="1"),
                Label("Currency", Input(name="currency", value="USD")),
                cls="form-row"
            ),
            select_field("Incoterm", "incoterm", [(i.value, i.value) for i in Incoterm], selected="FOB"),
            cls="card"
        ),
        Div(
            H3("Route"),
            Div(
                Label("Origin Country", Input(name="origin_country", value="CN", maxlength="2")),
                select_field("Destination Country", "destination_country",
                             [(code, code) for code in countries], selected="US"),
                Label("Origin Port", Input(name="origin_port")),
                cls="form-row"
            ),
            cls="card"
        ),
        Div(
            H3("Shipping"),
            Div(
                select_field("Shipping Method", "shipping_method", [
                    (ShippingMethod.SEA_FCL.value, "Sea (FCL)"),
                    (ShippingMethod.SEA_LCL.value, "Sea (LCL)"),
                    (ShippingMethod.AIR.value, "Air"),
                    (ShippingMethod.EXPRESS.value, "Express"),
                ], selected=ShippingMethod.SEA_FCL.value),
                select_field("Container", "container_type",
                             [(c.value, c.value) for c in ContainerType], selected=ContainerType.FT20.value),
                number_field("Weight (kg)", "weight"),
                cls="form-row"
            ),
            Div(
                number_field("Volume (CBM)", "volume"),
                number_field("Length (cm)", "length"),
                number_field("Width (cm)", "width"),
                cls="form-row"
            ),
            Div(
                number_field("Height (cm)", "height"),
                cls="form-row"
            ),
            cls="card"
        ),
        Div(
            H3("Overrides (optional)"),
            Div(
                number_field("Insurance Rate %", "insurance_rate", placeholder="0.5"),
                number_field("Inland Transport (Origin)", "inland_transport_origin"),
                number_field("Inland Transport (Destination)", "inland_transport_destination"),
                cls="form-row"
            ),
            Div(
                number_field("Benchmark 20ft", "freight_sea_20ft"),
                number_field("Benchmark 40ft", "freight_sea_40ft"),
                number_field("Benchmark LCL per CBM", "freight_lcl_per_cbm"),
                cls="form-row"
            ),
            Div(
                number_field("Benchmark Air per kg", "freight_air_per_kg"),
                cls="form-row"
            ),
            cls="card"
        ),
        Button("Calculate", type="submit"),
        method="post",
        action="/calculate",
        hx_post="/calculate",
        hx_target="#results",
        hx_swap="outerHTML"
    )


# ============================================================================
# RESULTS RENDERING
# ============================================================================

def render_results(result: LandedCostResult):
    """Totals, breakdown table and audit notes"""
    currency = result.totals.currency

    breakdown_rows = [
        Tr(
            Td(item.component),
            Td(format_money(item.amount, currency), cls="num"),
            Td(f"{item.percentage:.2f}%", cls="num"),
            Td(format_money(item.cumulative_amount, currency), cls="num"),
            Td(f"{item.cumulative_percentage:.2f}%", cls="num"),
        )
        for item in result.breakdown
    ]

    note_rows = [
        Li(note_badge(note.category), Strong(f"{note.component}: "), note.message)
        for note in result.notes
    ]

    return Div(
        Div(
            Div(
                Div(format_money(result.totals.total_landed_cost, currency), cls="stat-value"),
                Div("Total Landed Cost"),
                cls="card stat-card"
            ),
            Div(
                Div(format_money(result.totals.cost_per_unit, currency), cls="stat-value"),
                Div("Per Unit"),
                cls="card stat-card"
            ),
            Div(
                Div(format_money(result.customs.total_customs_fees, currency), cls="stat-value"),
                Div("Customs & Taxes"),
                cls="card stat-card"
            ),
            cls="stats-grid"
        ),
        Div(
            H3("Cost Breakdown"),
            Table(
                Thead(Tr(
                    Th("Component"), Th("Amount", cls="num"), Th("%", cls="num"),
                    Th("Cumulative", cls="num"), Th("Cumulative %", cls="num")
                )),
                Tbody(*breakdown_rows)
            ),
            cls="card"
        ),
        Div(
            H3("Notes"),
            Ul(*note_rows),
            P(f"Calculation {result.calculation_version} at {result.calculation_timestamp.isoformat()}",
              style="color: #666; font-size: 0.875rem;"),
            cls="card"
        ),
        id="results"
    )


def render_errors(message):
    return Div(
        Div(
            Strong("Please fix the following: "),
            Span(message),
            cls="alert alert-error"
        ),
        id="results"
    )


# ============================================================================
# CALCULATOR ROUTES
# ============================================================================

@rt("/")
def get():
    return page_layout("Calculator",
        H1("Landed Cost Calculator"),
        P("Estimate product, freight, insurance, customs and inland transport costs for an import shipment.",
          style="color: #666;"),
        calculator_form(),
        Div(id="results")
    )


@rt("/calculate")
def post(
    # Product
    product_name: str = "",
    hs_code: str = "",
    category: str = "",
    # Cost
    base_cost: str = "",
    quantity: str = "",
    currency: str = "",
    incoterm: str = "",
    # Route
    origin_country: str = "",
    destination_country: str = "",
    origin_port: str = "",
    destination_port: str = "",
    # Shipping
    shipping_method: str = "",
    container_type: str = "",
    weight: str = "",
    volume: str = "",
    length: str = "",
    width: str = "",
    height: str = "",
    # Overrides
    insurance_rate: str = "",
    inland_transport_origin: str = "",
    inland_transport_destination: str = "",
    freight_sea_20ft: str = "",
    freight_sea_40ft: str = "",
    freight_air_per_kg: str = "",
    freight_lcl_per_cbm: str = "",
):
    """Results panel for the calculator form (HTMX target)."""
    form = {
        "product_name": product_name,
        "hs_code": hs_code,
        "category": category,
        "base_cost": base_cost,
        "quantity": quantity,
        "currency": currency,
        "incoterm": incoterm,
        "origin_country": origin_country,
        "destination_country": destination_country,
        "origin_port": origin_port,
        "destination_port": destination_port,
        "shipping_method": shipping_method,
        "container_type": container_type if shipping_method == ShippingMethod.SEA_FCL.value else "",
        "weight": weight,
        "volume": volume,
        "length": length,
        "width": width,
        "height": height,
        "insurance_rate": insurance_rate,
        "inland_transport_origin": inland_transport_origin,
        "inland_transport_destination": inland_transport_destination,
        "freight_sea_20ft": freight_sea_20ft,
        "freight_sea_40ft": freight_sea_40ft,
        "freight_air_per_kg": freight_air_per_kg,
        "freight_lcl_per_cbm": freight_lcl_per_cbm,
    }
    shipment = map_form_to_shipment(form)

    try:
        validate_shipment(shipment)
        result = calculate_landed_cost(shipment, DEFAULT_COUNTRY_DUTY_LOOKUP, config=get_engine_config())
    except LandedCostError as e:
        return render_errors(str(e))

    return render_results(result)


# ============================================================================
# JSON API
# ============================================================================

async def calculate_api(req: Request):
    """Calculate landed cost for a JSON ShipmentInput."""
    try:
        payload = await req.json()
    except ValueError:
        return JSONResponse({"error": "Request body must be valid JSON"}, status_code=400)

    try:
        shipment = parse_shipment_payload(payload)
        result = calculate_landed_cost(shipment, DEFAULT_COUNTRY_DUTY_LOOKUP, config=get_engine_config())
    except LandedCostError as e:
        logger.info("Rejected landed cost request (field=%s): %s", getattr(e, "field", None), e)
        return JSONResponse({"error": str(e)}, status_code=400)
    except Exception:
        logger.exception("Landed cost calculation failed")
        return JSONResponse({"error": "Calculation failed"}, status_code=500)

    return JSONResponse(result_to_wire(result))


# Plain Starlette route: FastHTML would parse the body as a form before the handler runs
app.routes.insert(0, Route("/api/landed-cost/calculate", calculate_api, methods=["POST"]))


@rt("/api/landed-cost/countries/{country_code}")
def get(country_code: str):
    """Duty schedule the engine would use for a destination country."""
    config = DEFAULT_COUNTRY_DUTY_LOOKUP.lookup(country_code)
    return JSONResponse(country_config_to_wire(config))


# ============================================================================
# RUN SERVER
# ============================================================================

if __name__ == "__main__":
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    print("\n" + "="*50)
    print("  Landed Cost Calculator - FastHTML")
    print("="*50)
    print("  URL: http://localhost:5001")
    print("  API: POST /api/landed-cost/calculate")
    print("="*50 + "\n")

    serve(port=5001)
