# cli.py - interactive billing counter
import os
import sys
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

import requests
from prompt_toolkit import prompt
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.styles import Style as PromptStyle
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.prompt import Confirm, FloatPrompt, IntPrompt, Prompt
from rich.table import Table
from rich.text import Text

from sdk.posclient import PosClient

console = Console()
c = PosClient(
    base_url=os.environ.get("POS_API_URL", "http://127.0.0.1:8085"),
    api_key=os.environ.get("POS_API_KEY"),
)

# one billing session per terminal run
session_id = f"counter-{uuid.uuid4().hex[:8]}"
status_message = "Ready"
product_cache: List[Dict[str, Any]] = []
discount_percent = 0.0
gst_enabled = True

custom_style = PromptStyle.from_dict({
    'completion-menu.completion': 'bg:#008888 #ffffff',
    'completion-menu.completion.current': 'bg:#00aaaa #000000',
    'scrollbar.background': 'bg:#88aaaa',
    'scrollbar.button': 'bg:#222222',
})


def _rs(value: float) -> str:
    return f"₹{value:,.2f}"


# ---------------------------
# Display helpers
# ---------------------------
def show_products(products: List[Dict[str, Any]]):
    if not products:
        console.print("[italic yellow]No products found[/italic yellow]")
        return

    table = Table(title="📦 Catalog", box=box.ROUNDED, header_style="bold cyan",
                  title_style="bold magenta", show_lines=True)
    table.add_column("ID", style="dim", width=10)
    table.add_column("Name", style="bold", width=20)
    table.add_column("Category", width=12)
    table.add_column("Price", justify="right", width=12)
    table.add_column("Stock", justify="right", width=10)
    table.add_column("GST", justify="right", width=6)

    for p in products:
        per = f"/{'kg' if p.get('unit') in ('kg', 'g') else 'ltr'}" if p.get("type") == "weight" else ""
        stock = p.get("stock", 0)
        stock_style = "red" if stock <= 0 else ("yellow" if stock < 10 else "green")
        table.add_row(
            p.get("id", "N/A")[:8],
            p.get("name", "N/A"),
            p.get("category", "N/A"),
            ("variable" if p.get("price_type") == "variable" else _rs(p.get("price", 0))) + per,
            f"[{stock_style}]{stock:g}[/{stock_style}]",
            f"{p.get('gst_rate', 0):g}%",
        )
    console.print(table)


def show_cart(cart: Dict[str, Any]):
    items = cart.get("items", [])
    totals = cart.get("totals", {})

    title = Text()
    title.append("🛒 Bill - ", style="bold")
    title.append(cart.get("session_id", session_id), style="bold cyan")
    title.append(f" - Total: {_rs(totals.get('total', 0))}", style="bold green")

    if not items:
        console.print(Panel("Cart is empty 🛍️", title=title, style="blue"))
        return

    table = Table(box=box.ROUNDED, header_style="bold blue", show_lines=True)
    table.add_column("#", style="dim", width=3)
    table.add_column("Item", style="bold", width=28)
    table.add_column("Qty", justify="right", width=6)
    table.add_column("Price", justify="right", width=12)
    table.add_column("Total", justify="right", width=12)

    for idx, it in enumerate(items, start=1):
        name = it.get("name", "Unknown")
        if it.get("kind") == "weight":
            name += f" ({it.get('weight', 0):g}{it.get('unit', '')})"
        table.add_row(str(idx), name, str(it.get("quantity", 0)),
                      _rs(it.get("unit_price", 0)), _rs(it.get("line_total", 0)))

    summary = Table.grid(padding=(0, 2))
    summary.add_column(justify="right")
    summary.add_column(justify="right")
    summary.add_row("Subtotal", _rs(totals.get("subtotal", 0)))
    if totals.get("discount_amount"):
        summary.add_row(f"Discount ({totals.get('discount_percent', 0):g}%)", f"-{_rs(totals['discount_amount'])}")
    if gst_enabled:
        summary.add_row("GST", _rs(totals.get("tax_amount", 0)))
    summary.add_row("[bold]Total[/bold]", f"[bold green]{_rs(totals.get('total', 0))}[/bold green]")

    console.print(Panel(table, title=title, border_style="blue"))
    console.print(summary)


def show_sales(sales: List[Dict[str, Any]]):
    if not sales:
        console.print("[italic yellow]No sales recorded[/italic yellow]")
        return

    table = Table(title="📋 Sales", box=box.ROUNDED, header_style="bold yellow",
                  title_style="bold yellow", show_lines=True)
    table.add_column("Invoice", style="dim", width=10)
    table.add_column("Date", width=18)
    table.add_column("Customer", width=20)
    table.add_column("Items", justify="right", width=6)
    table.add_column("Payment", width=8)
    table.add_column("Total", justify="right", width=12)

    for s in sales:
        created = s.get("created_at", "")
        try:
            created = datetime.fromisoformat(created.replace("Z", "+00:00")).strftime("%d %b %Y, %H:%M")
        except ValueError:
            pass
        table.add_row(
            "#" + s.get("id", "")[-6:],
            created,
            s.get("customer_name") or "Walk-in",
            str(len(s.get("items", []))),
            s.get("payment_method", "").upper(),
            _rs(s.get("total", 0)),
        )
    console.print(table)


def show_dashboard(d: Dict[str, Any]):
    change = d.get("revenue_change", 0)
    arrow = "[green]▲[/green]" if change >= 0 else "[red]▼[/red]"
    grid = Table.grid(padding=(0, 3))
    grid.add_column()
    grid.add_column()
    grid.add_row("Today's revenue", f"{_rs(d.get('today_revenue', 0))} {arrow} {abs(change):.1f}%")
    grid.add_row("Today's orders", str(d.get("today_orders", 0)))
    grid.add_row("Products", str(d.get("total_products", 0)))
    grid.add_row("Low stock", f"[yellow]{d.get('low_stock_products', 0)}[/yellow]")
    grid.add_row("Out of stock", f"[red]{d.get('out_of_stock_products', 0)}[/red]")
    console.print(Panel(grid, title="📈 Dashboard", border_style="magenta"))

    top = d.get("top_products", [])
    if top:
        table = Table(title="Top products", box=box.SIMPLE)
        table.add_column("Product")
        table.add_column("Qty", justify="right")
        table.add_column("Revenue", justify="right")
        for row in top:
            table.add_row(row["name"], str(row["quantity"]), _rs(row["revenue"]))
        console.print(table)


def show_status(message: str, is_success: bool = True):
    style = "green" if is_success else "red"
    return Panel.fit(f"[{style}]{message}[/{style}]", title="Status")


# ---------------------------
# API wrapper
# ---------------------------
def _error_detail(exc: Exception) -> str:
    if isinstance(exc, requests.exceptions.HTTPError) and exc.response is not None:
        try:
            return exc.response.json().get("detail", str(exc))
        except ValueError:
            return exc.response.text or str(exc)
    return str(exc)


def try_api(fn, *args, success_msg: Optional[str] = None, **kwargs):
    """Call fn with a spinner; on failure print the API error and return None."""
    global status_message
    try:
        with Progress(SpinnerColumn(), TextColumn("[progress.description]{task.description}"), transient=True) as progress:
            progress.add_task(description="Processing...", total=None)
            result = fn(*args, **kwargs)
        if success_msg:
            status_message = success_msg
            console.print(show_status(success_msg, True))
        return result
    except (requests.exceptions.RequestException, ValueError) as e:
        status_message = f"Error: {_error_detail(e)}"
        console.print(show_status(status_message, False))
        return None


# ---------------------------
# Input helpers
# ---------------------------
def get_product_completer():
    names = [p.get("name", "") for p in product_cache]
    barcodes = [p.get("barcode") or "" for p in product_cache]
    return WordCompleter([n for n in names + barcodes if n], ignore_case=True, sentence=True)


def prompt_with_autocomplete(message: str, completer=None, default: str = ""):
    return prompt(f"{message} ", completer=completer, style=custom_style, default=default)


def pick_product() -> Optional[Dict[str, Any]]:
    term = prompt_with_autocomplete("Product name or barcode", completer=get_product_completer()).strip()
    if not term:
        return None
    exact = [p for p in product_cache if p.get("name", "").lower() == term.lower() or p.get("barcode") == term]
    matches = exact or (try_api(c.search_products, term) or [])
    if not matches:
        console.print(f"[yellow]No product matches '{term}'[/yellow]")
        return None
    if len(matches) == 1:
        return matches[0]
    show_products(matches)
    idx = IntPrompt.ask("Pick row number", default=1)
    return matches[max(1, min(idx, len(matches))) - 1]


def refresh_cart():
    cart = try_api(c.view_cart, session_id, discount_percent, gst_enabled)
    if cart:
        show_cart(cart)
    return cart


def create_header():
    header = Table(show_header=False, box=box.ROUNDED)
    header.add_column("left", width=30)
    header.add_column("center", width=40)
    header.add_column("right", width=30)
    profile = try_api(c.get_profile) or {}
    header.add_row(
        f"🧾 {profile.get('shop_name', 'POS')}",
        "[bold blue]Billing Counter[/bold blue]",
        f"[dim]{datetime.now().strftime('%Y-%m-%d %H:%M')}[/dim]",
    )
    return Panel(header, style="bold blue")


# ---------------------------
# Actions
# ---------------------------
def add_item():
    product = pick_product()
    if not product:
        return
    weight = unit = price = None
    if product.get("price_type") == "variable":
        price = FloatPrompt.ask("Price", default=0.0)
    if product.get("type") == "weight":
        unit = Prompt.ask("Unit", choices=["kg", "g"] if product.get("unit") in ("kg", "g") else ["ltr", "ml"],
                          default=product.get("unit"))
        weight = FloatPrompt.ask(f"Weight ({unit})", default=1.0)
    qty = IntPrompt.ask("Quantity", default=1)
    if try_api(c.add_to_cart, session_id, product["id"], qty, weight, unit, price,
               success_msg=f"Added {product['name']}") is not None:
        refresh_cart()


def _pick_line(cart: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    items = cart.get("items", [])
    if not items:
        console.print("[italic yellow]Cart is empty[/italic yellow]")
        return None
    idx = IntPrompt.ask("Line #", default=1)
    if idx < 1 or idx > len(items):
        console.print("[red]No such line[/red]")
        return None
    return items[idx - 1]


def change_quantity():
    cart = refresh_cart()
    line = _pick_line(cart or {})
    if not line:
        return
    qty = IntPrompt.ask("New quantity (0 removes)", default=line["quantity"])
    if try_api(c.update_cart_line, session_id, line["line_id"], qty, success_msg="Quantity updated") is not None:
        refresh_cart()


def remove_item():
    cart = refresh_cart()
    line = _pick_line(cart or {})
    if line and try_api(c.remove_from_cart, session_id, line["line_id"], success_msg=f"Removed {line['name']}") is not None:
        refresh_cart()


def set_discount_and_gst():
    global discount_percent, gst_enabled
    discount_percent = min(max(FloatPrompt.ask("Discount %", default=discount_percent), 0.0), 100.0)
    gst_enabled = Confirm.ask("Apply GST?", default=gst_enabled)
    refresh_cart()


def checkout():
    cart = refresh_cart()
    if not cart or not cart.get("items"):
        console.print(show_status("Cart is empty", False))
        return
    name = Prompt.ask("Customer name (blank for walk-in)", default="").strip() or None
    mobile = None
    if name:
        mobile = Prompt.ask("Customer mobile", default="").strip() or None
    method = Prompt.ask("Payment", choices=["cash", "card", "upi"], default="cash")

    r = try_api(c.checkout, session_id, discount_percent, gst_enabled, method, name, mobile)
    if r is None:
        return
    body = r.json()
    if r.status_code != 200:
        console.print(Panel.fit(f"[red]Checkout failed:[/red] {body.get('detail', body)}", title="❌ Checkout"))
        return
    console.print(Panel.fit(
        f"[green]Sale recorded[/green]\nInvoice: [bold]#{body['id'][-8:]}[/bold]\nTotal: [bold]{_rs(body['total'])}[/bold]",
        title="✅ Sale",
    ))
    if Confirm.ask("Print receipt?", default=True):
        text = try_api(c.receipt_text, body["id"])
        if text:
            console.print(Panel(text, border_style="white", expand=False))


# ---------------------------
# Main menu
# ---------------------------
def menu():
    global status_message, product_cache

    console.clear()
    console.print(create_header())
    product_cache = try_api(c.list_products) or []

    options = [
        ("1", "📦 List products", "7", "💳 Checkout"),
        ("2", "🔍 Search products", "8", "📋 Sales"),
        ("3", "➕ Add item to bill", "9", "📈 Dashboard"),
        ("4", "✏️ Change quantity", "10", "🧹 Clear bill"),
        ("5", "➖ Remove item", "11", "🔄 Reset store"),
        ("6", "🏷️ Discount / GST", "q", "👋 Quit"),
    ]

    while True:
        menu_table = Table.grid(padding=(0, 2))
        menu_table.add_column("Key", style="bold cyan", width=4)
        menu_table.add_column("Option", width=30)
        menu_table.add_column("Key", style="bold cyan", width=4)
        menu_table.add_column("Option", width=30)
        for row in options:
            menu_table.add_row(*row)
        console.print(Panel(menu_table, title=f"📋 Menu - {session_id}", border_style="yellow"))

        choice = prompt_with_autocomplete(
            "\nChoose an option",
            completer=WordCompleter([str(i) for i in range(1, 12)] + ["q", "quit", "exit"]),
        ).strip()

        if choice == "1":
            products = try_api(c.list_products, success_msg="Products loaded")
            if products is not None:
                product_cache = products
                show_products(products)
        elif choice == "2":
            term = prompt_with_autocomplete("Search term", completer=get_product_completer())
            res = try_api(c.search_products, term)
            if res is not None:
                show_products(res)
        elif choice == "3":
            add_item()
        elif choice == "4":
            change_quantity()
        elif choice == "5":
            remove_item()
        elif choice == "6":
            set_discount_and_gst()
        elif choice == "7":
            checkout()
            product_cache = try_api(c.list_products) or product_cache
        elif choice == "8":
            sales = try_api(c.list_sales)
            if sales is not None:
                show_sales(sales)
        elif choice == "9":
            d = try_api(c.dashboard)
            if d:
                show_dashboard(d)
        elif choice == "10":
            if try_api(c.clear_cart, session_id, success_msg="Bill cleared") is not None:
                refresh_cart()
        elif choice == "11":
            if Confirm.ask("[red]This will clear all data. Continue?[/red]"):
                try_api(c.reset, success_msg="Store reset")
                product_cache = []
        elif choice.lower() in ("q", "quit", "exit"):
            if Confirm.ask("Are you sure you want to quit?"):
                console.print(Panel.fit("[bold green]Goodbye 👋[/bold green]"))
                sys.exit(0)

        console.print()
        console.rule(style="dim")


if __name__ == "__main__":
    try:
        menu()
    except KeyboardInterrupt:
        console.print("\n\n[bold red]Interrupted by user[/bold red]")
        sys.exit(1)
