import os
import subprocess
import sys
from pathlib import Path


def main():
    """Build the tray application using PyInstaller"""
    project_root = Path(__file__).parent

    # Configuration
    app_name = "Meter"
    entry_point = "main.py"

    # Assets to include: (source, destination) relative to project root
    # Windows uses ";" as separator, Linux ":"
    sep = ";" if os.name == "nt" else ":"

    add_data = [
        ("meter/resources/templates", "meter/resources/templates"),
    ]

    args = [
        "PyInstaller",
        "--noconfirm",
        "--clean",
        "--windowed",  # No console window
        f"--name={app_name}",
    ]

    for src, dst in add_data:
        args.append(f"--add-data={src}{sep}{dst}")

    # Add hidden imports (only what is actually needed)
    args.append("--hidden-import=aiosqlite")

    # Exclude unused database drivers to reduce warnings
    args.append("--exclude-module=MySQLdb")
    args.append("--exclude-module=psycopg2")
    args.append("--exclude-module=pysqlite2")

    # reportlab loads its font metrics dynamically
    args.append("--collect-all=reportlab")

    args.append(entry_point)

    print("=" * 50)
    print(f"Building {app_name}...")
    print(f"Command: {' '.join(args)}")
    print("=" * 50)

    try:
        # Check if pyinstaller is installed
        subprocess.run([sys.executable, "-m", "PyInstaller", "--version"], check=True, capture_output=True)

        subprocess.run([sys.executable, "-m"] + args, check=True)

        print("\nBuild successful!")
        print(f"Output is located at: {project_root / 'dist' / app_name}")

    except subprocess.CalledProcessError as e:
        print(f"\nError: Build failed with exit code {e.returncode}")
        print("Ensure 'pyinstaller' is installed: pip install pyinstaller")
        sys.exit(1)
    except FileNotFoundError:
        print("\nError: PyInstaller not found.")
        print("Please install it: pip install pyinstaller")
        sys.exit(1)


if __name__ == "__main__":
    main()
