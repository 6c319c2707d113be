import csv
import io
import json
from datetime import datetime, timezone

from models import WalletPersona
from utils import wei_to_ether


def _gas_fee(tx) -> float:
    return wei_to_ether(int(tx.gas_used) * int(tx.gas_price))


def to_csv(persona: WalletPersona) -> bytes:
    """Export wallet persona to CSV."""
    out = io.StringIO()
    w = csv.writer(out)

    w.writerow(["WALLET PERSONA REPORT"])
    w.writerow(["Generated", datetime.now().strftime("%Y-%m-%d %H:%M:%S")])
    w.writerow([])

    # ── Summary ───────────────────────────────────────────────────────
    w.writerow(["SUMMARY"])
    w.writerow(["Address", persona.address])
    w.writerow(["Chain", persona.chain])
    w.writerow(["Transactions Analyzed", persona.transaction_count])
    w.writerow(["Activity Level", persona.activity_level])
    w.writerow(["Security Score", persona.security_score])
    w.writerow(["Risk Score", persona.risk_score])
    w.writerow(["Behavioral Traits", ", ".join(persona.behavioral_traits)])
    w.writerow(["Recommended Dapps", ", ".join(persona.recommended_dapps)])
    w.writerow([])

    # ── Archetypes ────────────────────────────────────────────────────
    w.writerow(["ARCHETYPES (Sorted by Weight)"])
    w.writerow(["Archetype", "Weight (%)"])
    for archetype, weight in sorted(
        persona.archetypes.items(), key=lambda item: item[1], reverse=True
    ):
        w.writerow([archetype.value, f"{weight:.2f}"])
    w.writerow([])

    # ── Protocols ─────────────────────────────────────────────────────
    w.writerow(["TOP PROTOCOLS"])
    for protocol in persona.top_protocols:
        w.writerow([protocol])
    w.writerow([])

    # ── Transactions ──────────────────────────────────────────────────
    w.writerow(["TRANSACTIONS"])
    w.writerow(["Hash", "Time (UTC)", "From", "To", "Value", "Token", "Gas Fee", "Category"])
    for tx in persona.transactions:
        w.writerow([
            tx.hash,
            datetime.fromtimestamp(tx.timestamp, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S"),
            tx.from_address,
            tx.to_address or "(contract creation)",
            tx.value,
            tx.token_symbol or "",
            f"{_gas_fee(tx):.8f}",
            tx.category.value,
        ])

    # ── AI Insights ───────────────────────────────────────────────────
    if persona.ai_insights:
        w.writerow([])
        w.writerow(["AI INSIGHTS"])
        for key, value in persona.ai_insights.model_dump().items():
            if isinstance(value, list):
                value = "; ".join(value)
            w.writerow([key.replace("_", " ").title(), value])

    return out.getvalue().encode("utf-8")


def to_json(persona: WalletPersona) -> bytes:
    """Export wallet persona as formatted JSON."""
    return json.dumps(persona.model_dump(mode="json"), indent=2, default=str).encode("utf-8")


def to_excel(persona: WalletPersona) -> bytes:
    """Export wallet persona to formatted Excel workbook."""
    import openpyxl
    from openpyxl.styles import Alignment, Font, PatternFill
    from openpyxl.utils import get_column_letter

    wb = openpyxl.Workbook()

    # ── Summary Sheet ─────────────────────────────────────────────────
    ws = wb.active
    ws.title = "Persona"

    accent = PatternFill(start_color="6c5ce7", end_color="6c5ce7", fill_type="solid")
    dark = PatternFill(start_color="1a1a2e", end_color="1a1a2e", fill_type="solid")
    white_bold = Font(bold=True, color="FFFFFF")
    bold = Font(bold=True)

    ws.merge_cells("A1:E1")
    ws["A1"] = "Wallet Persona Report"
    ws["A1"].font = Font(bold=True, size=16, color="FFFFFF")
    ws["A1"].fill = accent
    ws["A1"].alignment = Alignment(horizontal="center")

    rows = [
        ("Address", persona.address),
        ("Chain", persona.chain),
        ("Generated", datetime.now().strftime("%Y-%m-%d %H:%M:%S")),
        ("", ""),
        ("Transactions Analyzed", f"{persona.transaction_count:,}"),
        ("Activity Level", persona.activity_level),
        ("Security Score", persona.security_score),
        ("Risk Score", persona.risk_score),
        ("Top Protocols", ", ".join(persona.top_protocols) or "N/A"),
        ("Behavioral Traits", ", ".join(persona.behavioral_traits)),
        ("Recommended Dapps", ", ".join(persona.recommended_dapps)),
    ]
    for i, (label, value) in enumerate(rows, 3):
        ws[f"A{i}"] = label
        ws[f"A{i}"].font = bold
        ws[f"B{i}"] = value

    # ── Archetype Sheet ───────────────────────────────────────────────
    ws2 = wb.create_sheet("Archetypes")
    for col, h in enumerate(["Archetype", "Weight (%)"], 1):
        cell = ws2.cell(row=1, column=col, value=h)
        cell.font = white_bold
        cell.fill = dark

    ranked = sorted(persona.archetypes.items(), key=lambda item: item[1], reverse=True)
    for i, (archetype, weight) in enumerate(ranked, 2):
        ws2.cell(row=i, column=1, value=archetype.value)
        ws2.cell(row=i, column=2, value=weight)

    # ── Transactions Sheet ────────────────────────────────────────────
    ws3 = wb.create_sheet("Transactions")
    headers = ["Hash", "Timestamp", "From", "To", "Value", "Token", "Gas Fee", "Category"]
    for col, h in enumerate(headers, 1):
        cell = ws3.cell(row=1, column=col, value=h)
        cell.font = white_bold
        cell.fill = dark

    for i, tx in enumerate(persona.transactions, 2):
        ws3.cell(row=i, column=1, value=tx.hash)
        ws3.cell(row=i, column=2, value=tx.timestamp)
        ws3.cell(row=i, column=3, value=tx.from_address)
        ws3.cell(row=i, column=4, value=tx.to_address or "(contract creation)")
        ws3.cell(row=i, column=5, value=tx.value)
        ws3.cell(row=i, column=6, value=tx.token_symbol or "")
        ws3.cell(row=i, column=7, value=round(_gas_fee(tx), 8))
        ws3.cell(row=i, column=8, value=tx.category.value)

    # Auto-fit column widths
    for sheet in [ws, ws2, ws3]:
        for idx, col in enumerate(sheet.columns, 1):
            max_len = max(len(str(cell.value or "")) for cell in col)
            sheet.column_dimensions[get_column_letter(idx)].width = min(max_len + 3, 45)

    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()
