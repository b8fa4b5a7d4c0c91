# Kiosk_Deployer.py
# Windows 10/11 Pro multi-app kiosk deployment (AssignedAccess + AppLocker)
# Dependencies: pywin32, psutil, loguru, cryptography
# Run as Administrator (or pass --elevate)
#
#   python Kiosk_Deployer.py deploy --app-path "C:\Apps\scanner.exe"
#   python Kiosk_Deployer.py validate
#   python Kiosk_Deployer.py remove --remove-account --clear-applocker

import sys

from kiosk_policy.cli import main

if __name__ == "__main__":
    sys.exit(main())
