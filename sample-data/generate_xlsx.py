#!/usr/bin/env python3
"""
Generates sample-data/sample_cpv.xlsx and sample-data/sample_paap.xlsx for
trying paap-doctor by hand.

Run from the repo root:
    python sample-data/generate_xlsx.py
    paap-doctor report sample-data/sample_paap.xlsx --cpv sample-data/sample_cpv.xlsx

What is baked in:
  sample_cpv.xlsx
    - "CPV" sheet: header row, code column A, Romanian name B, English name C
    - "Extra" sheet: labelled header row two rows down, codes without check digit
  sample_paap.xlsx
    - "PAAP 2024" sheet: title rows above the header, a units row under it,
      Romanian-formatted amounts, a subtotal row without a name
    - "Anexa" sheet: no header at all (found by column statistics)
"""

from pathlib import Path
import openpyxl

ROOT = Path(__file__).parent
CPV_OUTPUT = ROOT / "sample_cpv.xlsx"
PAAP_OUTPUT = ROOT / "sample_paap.xlsx"

# ── CPV registry ─────────────────────────────────────────────────────────────
wb = openpyxl.Workbook()
ws = wb.active
ws.title = "CPV"
ws.append(["Cod CPV", "Denumire", "Description"])
for row in [
    ["09134100-8", "Motorina", "Diesel oil"],
    ["30192000-1", "Accesorii de birou", "Office supplies"],
    ["30213100-6", "Computere portabile", "Portable computers"],
    ["45233140-2", "Lucrari de drumuri", "Roadworks"],
    ["45111200-0", "Lucrari de pregatire a santierului", "Site preparation work"],
    ["71320000-7", "Servicii de proiectare tehnica", "Engineering design services"],
    ["79713000-5", "Servicii de paza", "Guard services"],
    ["90911200-8", "Servicii de curatenie a cladirilor", "Building-cleaning services"],
]:
    ws.append(row)

extra = wb.create_sheet("Extra")
extra.append(["Lista suplimentara"])
extra.append([])
extra.append(["Nr", "Cod", "Denumire romana", "English name"])
extra.append([1, "64210000", "Servicii de telefonie", "Telephone services"])
extra.append([2, "09310000", "Electricitate", "Electricity"])
wb.save(CPV_OUTPUT)

# ── PAAP ─────────────────────────────────────────────────────────────────────
wb = openpyxl.Workbook()
ws = wb.active
ws.title = "PAAP 2024"
ws.append(["PRIMARIA EXEMPLU"])
ws.append(["Programul anual al achizitiilor publice 2024"])
ws.append([])
ws.append([
    "Nr. crt.",
    "Obiectul contractului",
    "Cod CPV",
    "Valoarea estimata fara TVA",
    "Valoarea estimata cu TVA",
    "Sursa de finantare",
    "Data estimata initiere",
    "Data estimata finalizare",
])
ws.append(["", "", "", "lei", "lei", "", "", ""])
for row in [
    [1, "Motorina pentru parcul auto", "09134100-8", "45.000,00", "53.550,00", "Buget local", "15.02.2024", "31.12.2024"],
    [2, "Rechizite si accesorii de birou", "30192000-1", 8400, 9996, "Buget local", "martie 2024", "aprilie 2024"],
    [3, "Laptopuri", "30213100-6 Computere portabile", 62000, 73780, "Fonduri europene", "10.05.2024", ""],
    [4, "Modernizare drum comunal DC 12", "45233140-2, 45111200", "1.250.000,00", "1.487.500,00", "PNDL", "T2 2024", "Q4"],
    [5, "Proiectare tehnica sala de sport", "71320000-7", 95000, 113050, "Buget local", "2024-07-01", ""],
    [6, "Servicii de paza", "79713000-5", 120000, 142800, "Buget local", "ianuarie", "decembrie"],
    [7, "Servicii de curatenie", "90911200-8", 36000, 42840, "", "septembrie 2024", ""],
    ["TOTAL", "", "", 1616400, 1923516, "", "", ""],
]:
    ws.append(row)

annex = wb.create_sheet("Anexa")
for row in [
    [1, "Servicii de telefonie", "64210000-1", 12000],
    [2, "Energie electrica", "09310000-5", 180000],
    [3, "Abonamente publicatii", "", 2500],
    [4, "Reparatii curente", "", 40000],
]:
    annex.append(row)
wb.save(PAAP_OUTPUT)

print(f"Saved: {CPV_OUTPUT}")
print(f"Saved: {PAAP_OUTPUT}")
