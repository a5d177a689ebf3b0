import sys
import tkinter as tk
from tkinter import filedialog, messagebox
from PIL import Image, ImageTk
from pathlib import Path
from typing import List, Optional, Sequence, Tuple
import viewer_style as style
from bmpdecoder import BMPError, decode_pixels, header_info, read_headers
from bmpimage import BMPImage, PalettedImage, RGBA, RGBAImage

Cell = Tuple[int, int, int, int, str]

# ==== Utility functions ====
def rgb_hex(r: int, g: int, b: int) -> str:
    return f"#{r:02x}{g:02x}{b:02x}"

def pixel_info_text(image: BMPImage, x: int, y: int) -> str:
    r, g, b, a = image.at(x, y)
    lines = [f"X:{x}", f"Y:{y}", f"R:{r}", f"G:{g}", f"B:{b}", f"A:{a}"]
    if isinstance(image, PalettedImage):
        lines.append(f"Index:{image.index_at(x, y)}")
    elif isinstance(image, RGBAImage) and image.depth == 16:
        lines.append("(16-bit channels)")
    return "\n".join(lines)

def preview_color(image: BMPImage, x: int, y: int) -> str:
    r, g, b, _ = image.at(x, y)
    if isinstance(image, RGBAImage) and image.depth == 16:
        r, g, b = r >> 8, g >> 8, b >> 8
    return rgb_hex(r, g, b)

def palette_cells(palette: Sequence[RGBA], cols: int = style.PALETTE_COLUMNS,
                  cell: int = style.PALETTE_CELL, pad: int = 2) -> List[Cell]:
    """Swatch rectangles (x0, y0, x1, y1, fill) for at most 256 palette entries."""
    cells = []
    for i, (r, g, b, _) in enumerate(palette[:256]):
        col, row = i % cols, i // cols
        x, y = pad + col * cell, pad + row * cell
        cells.append((x, y, x + cell, y + cell, rgb_hex(r, g, b)))
    return cells

# ==== BMP Viewer ====
class BMPViewer(tk.Frame):
    def __init__(self, master, file_path=None):
        super().__init__(master, bg=style.BG_MAIN)
        self.master = master

        # Toolbar
        toolbar = tk.Frame(self, bg=style.BG_TOOLBAR, padx=10, pady=8)
        toolbar.pack(side="top", fill="x")
        for text, command in (("Open BMP", self.open_bmp),
                              ("Zoom In", self.zoom_in),
                              ("Zoom Out", self.zoom_out)):
            tk.Button(toolbar, text=text, command=command,
                      bg=style.BG_BUTTON, fg=style.FG_BUTTON, font=style.FONT_BUTTON,
                      relief="flat", padx=10, pady=4).pack(side="left", padx=5)

        main_frame = tk.Frame(self, bg=style.BG_MAIN)
        main_frame.pack(fill="both", expand=True, padx=10, pady=10)

        # Canvas with scrollbars
        canvas_frame = tk.Frame(main_frame, bg=style.BG_MAIN)
        canvas_frame.pack(side="left", fill="both", expand=True, padx=(0, 10))
        self.canvas = tk.Canvas(canvas_frame, bg=style.BG_PANEL, cursor="cross")
        self.canvas.pack(side="left", fill="both", expand=True)
        scroll_y = tk.Scrollbar(canvas_frame, orient="vertical", command=self.canvas.yview)
        scroll_y.pack(side="right", fill="y")
        scroll_x = tk.Scrollbar(main_frame, orient="horizontal", command=self.canvas.xview)
        scroll_x.pack(side="bottom", fill="x")
        self.canvas.configure(yscrollcommand=scroll_y.set, xscrollcommand=scroll_x.set)
        self.canvas.bind("<Button-1>", self.show_pixel_info)
        self.canvas.bind("<MouseWheel>", lambda e: self.zoom_in() if e.delta > 0 else self.zoom_out())
        self.canvas.bind("<Button-4>", lambda e: self.zoom_in())
        self.canvas.bind("<Button-5>", lambda e: self.zoom_out())

        # Info panel
        info_frame = tk.Frame(main_frame, bg=style.BG_PANEL, bd=2, relief="groove", padx=15, pady=15)
        info_frame.pack(side="right", fill="y")
        tk.Label(info_frame, text="Pixel Info", font=style.FONT_HEADER,
                 bg=style.BG_PANEL, fg=style.FG_TEXT).pack(anchor="w", pady=(0, 5))
        self.pixel_label = tk.Label(info_frame, text="Click on the image to view pixel values.",
                                    font=style.FONT_TEXT, justify="left",
                                    bg=style.BG_PANEL, fg=style.FG_SUBTEXT)
        self.pixel_label.pack(anchor="w", pady=(0, 10))
        self.color_preview = tk.Canvas(info_frame, width=80, height=50, bg="#cccccc", bd=1, relief="solid")
        self.color_preview.pack(anchor="w", pady=(0, 20))
        tk.Label(info_frame, text="Header Info", font=style.FONT_HEADER,
                 bg=style.BG_PANEL, fg=style.FG_TEXT).pack(anchor="w", pady=(0, 5))
        self.header_text = tk.Text(info_frame, height=16, width=40, font=style.FONT_MONO,
                                   relief="flat", wrap="none", state="disabled")
        self.header_text.pack(anchor="w", pady=(0, 5))
        tk.Label(info_frame, text="Color Palette", font=style.FONT_HEADER,
                 bg=style.BG_PANEL, fg=style.FG_TEXT).pack(anchor="w", pady=(10, 5))
        self.palette_canvas = tk.Canvas(info_frame, width=260, height=40, bg=style.BG_PANEL, bd=1, relief="solid")
        self.palette_canvas.pack(anchor="w")

        self.bmp: Optional[BMPImage] = None
        self.image: Optional[Image.Image] = None
        self.tk_img = None
        self.zoom_factor = 1.0

        if file_path:
            self.load_bmp(file_path)

    def open_bmp(self):
        file_path = filedialog.askopenfilename(filetypes=[("BMP files", "*.bmp *.dib")])
        if file_path:
            self.load_bmp(file_path)

    def load_bmp(self, file_path):
        try:
            with open(file_path, "rb") as fp:
                file_header, info, palette = read_headers(fp)
                bmp = decode_pixels(fp, file_header, info, palette)
        except (BMPError, OSError) as e:
            messagebox.showerror("Error", f"Failed to open BMP file:\n{e}")
            return
        self.bmp = bmp
        self.image = bmp.to_pil().convert("RGBA")
        self.zoom_factor = 1.0
        self.master.title(f"BMP Viewer - {Path(file_path).name}")
        self.display_image()
        self.show_header_info(header_info(file_header, info, palette))
        self.draw_palette(palette)

    def display_image(self):
        if self.image is None:
            return
        w = max(1, int(self.image.width * self.zoom_factor))
        h = max(1, int(self.image.height * self.zoom_factor))
        self.tk_img = ImageTk.PhotoImage(self.image.resize((w, h), Image.NEAREST))
        self.canvas.delete("all")
        self.canvas.create_image(0, 0, anchor="nw", image=self.tk_img)
        self.canvas.config(scrollregion=self.canvas.bbox("all"))

    def zoom_in(self):
        self.zoom_factor *= style.ZOOM_STEP
        self.display_image()

    def zoom_out(self):
        self.zoom_factor /= style.ZOOM_STEP
        self.display_image()

    def show_pixel_info(self, event):
        if self.bmp is None:
            return
        x = int(self.canvas.canvasx(event.x) / self.zoom_factor)
        y = int(self.canvas.canvasy(event.y) / self.zoom_factor)
        if 0 <= x < self.bmp.width and 0 <= y < self.bmp.height:
            self.pixel_label.config(text=pixel_info_text(self.bmp, x, y))
            self.color_preview.config(bg=preview_color(self.bmp, x, y))

    def show_header_info(self, info: dict):
        self.header_text.configure(state="normal")
        self.header_text.delete("1.0", "end")
        self.header_text.insert("1.0", "\n".join(f"{k}: {v}" for k, v in info.items()))
        self.header_text.configure(state="disabled")

    def draw_palette(self, palette):
        self.palette_canvas.delete("all")
        cells = palette_cells(palette)
        if not cells:
            return
        self.palette_canvas.config(width=max(c[2] for c in cells) + 2, height=max(c[3] for c in cells) + 2)
        for x0, y0, x1, y1, fill in cells:
            self.palette_canvas.create_rectangle(x0, y0, x1, y1, fill=fill, outline="")


def main():
    root = tk.Tk()
    root.title("BMP Viewer")
    root.geometry("1100x750")
    app = BMPViewer(root, sys.argv[1] if len(sys.argv) > 1 else None)
    app.pack(fill="both", expand=True)
    root.mainloop()


# ==== Main ====
if __name__ == "__main__":
    main()
